"""Portable SQL types that work across PostgreSQL and SQLite.

PostgreSQL uses a native ``UUID[]`` column, SQLite stores a JSON list.
"""

import uuid as _uuid

from sqlalchemy import JSON, TypeDecorator


class UUIDArray(TypeDecorator):
    """PostgreSQL ``ARRAY(UUID)`` on PG, JSON list on other dialects.

    Used for the child ids a third-party member is allowed to see.
    """

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import ARRAY, UUID

            return dialect.type_descriptor(ARRAY(UUID(as_uuid=True)))
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value, dialect):
        if value is not None and dialect.name != "postgresql":
            return [str(v) for v in value]
        return value

    def process_result_value(self, value, dialect):
        if value is not None and dialect.name != "postgresql":
            return [_uuid.UUID(v) for v in value]
        return value
