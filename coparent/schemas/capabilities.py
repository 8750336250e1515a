import uuid

from pydantic import BaseModel, ConfigDict


class Capabilities(BaseModel):
    """Resolved permissions for one profile. Every feature gates on these flags."""

    effective_role: str  # parent | child | third_party
    is_co_parent_linked: bool = False
    has_premium_access: bool = False

    can_mutate: bool = False
    can_manage_documents: bool = False
    can_manage_children: bool = False
    can_manage_expenses: bool = False
    can_edit_calendar: bool = False
    can_access_settings: bool = False

    can_view_calendar: bool = False
    can_view_full_calendar: bool = False
    can_view_journal: bool = False
    can_send_messages: bool = False
    can_submit_mood_checkins: bool = False
    can_send_notes_to_parents: bool = False

    can_view_audit_log: bool = False
    can_export_court_records: bool = False
    can_invite_co_parent: bool = False
    can_invite_third_party: bool = False
    can_access_admin: bool = False

    is_view_only: bool = False
    view_only_reason: str | None = None

    model_config = ConfigDict(frozen=True)


class ChildPermissionUpdate(BaseModel):
    allow_parent_messaging: bool | None = None
    allow_family_chat: bool | None = None
    allow_sibling_messaging: bool | None = None
    allow_push_notifications: bool | None = None
    allow_calendar_reminders: bool | None = None
    show_full_event_details: bool | None = None
    allow_mood_checkins: bool | None = None
    allow_notes_to_parents: bool | None = None


class ChildPermissionResponse(BaseModel):
    child_profile_id: uuid.UUID
    parent_profile_id: uuid.UUID
    allow_parent_messaging: bool
    allow_family_chat: bool
    allow_sibling_messaging: bool
    allow_push_notifications: bool
    allow_calendar_reminders: bool
    show_full_event_details: bool
    allow_mood_checkins: bool
    allow_notes_to_parents: bool

    model_config = ConfigDict(from_attributes=True)
