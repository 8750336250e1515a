"""SQLAlchemy ORM models.

All models are imported here so that Alembic can discover them
via ``Base.metadata`` when generating migrations.
"""

from coparent.models.access_pass import AccessPassCode, AccessPassRedemption  # noqa: F401
from coparent.models.family import FamilyMembership  # noqa: F401
from coparent.models.invitation import Invitation  # noqa: F401
from coparent.models.profile import ChildPermission, Profile  # noqa: F401

__all__ = [
    "AccessPassCode",
    "AccessPassRedemption",
    "ChildPermission",
    "FamilyMembership",
    "Invitation",
    "Profile",
]
