"""
Domain values - immutable pydantic models.

Cards and audit entries are frozen: every change produces a new value via
``model_copy``, so a caller always still holds the pre-transition card.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cardflow.clock import ensure_utc
from cardflow.models.enums import (
    ApprovalEventAction,
    AuditAction,
    ContentStatus,
    MediaType,
    Platform,
)

SYSTEM_NAME = "System"
SYSTEM_EMAIL = "system"

# 24-hour HH:MM
SCHEDULE_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def new_card_id() -> str:
    return str(uuid4())


def new_entry_id() -> str:
    return f"audit_{uuid4().hex}"


def normalise_hashtags(values: Iterable[str]) -> Tuple[str, ...]:
    """Strip whitespace and leading "#", dropping blanks."""
    tags = (tag.strip().lstrip("#") for tag in values)
    return tuple(tag for tag in tags if tag)


class Actor(BaseModel):
    """
    The current user, as handed to the engine by the host's auth layer.

    ``id`` is the stable member id; ``name`` is presentation only and is
    never used for authorization.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str
    email: str = ""


class AuditEntry(BaseModel):
    """
    One immutable fact about a card's history.

    Invariants:
    - Fields are fixed once constructed
    - Never removed or reordered once appended
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_entry_id)
    action: AuditAction
    performed_by: str
    performed_by_email: str = ""
    timestamp: datetime
    details: Optional[str] = None

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ContentCard(BaseModel):
    """
    A social post moving through draft → pending_approval → approved/scheduled → published.

    Invariants enforced by the state machine:
    - Approval and rejection provenance are mutually exclusive
    - Provenance is cleared on re-entry to draft or pending_approval
    - audit_log is append-only, oldest first
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_card_id)
    project_id: str
    platform: Platform
    channel: str = "social-media"

    title: str
    caption: str = ""
    hashtags: Tuple[str, ...] = ()

    status: ContentStatus = ContentStatus.DRAFT

    # Member ids, in the order the submitter picked them
    approvers: Tuple[str, ...] = ()
    approved_by: Optional[str] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_by_name: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = Field(None, pattern=SCHEDULE_TIME_PATTERN)

    media_url: Optional[str] = None
    media_type: Optional[MediaType] = None
    media_file_name: Optional[str] = None

    created_by: str
    created_by_email: str = ""
    created_at: datetime
    last_edited_by: Optional[str] = None
    last_edited_at: Optional[datetime] = None

    audit_log: Tuple[AuditEntry, ...] = ()

    # Engagement metrics, AI prompt history and the like; passed through untouched
    extra: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("approvers")
    @classmethod
    def _dedupe_approvers(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(dict.fromkeys(v for v in value if v))

    @field_validator("created_at", "approved_at", "rejected_at", "last_edited_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def is_approver(self, actor: Actor) -> bool:
        return actor.id in self.approvers


class CardEdit(BaseModel):
    """Field changes for an ``edit`` action. Unset fields are left alone."""

    title: Optional[str] = Field(None, min_length=1, max_length=200)
    caption: Optional[str] = None
    hashtags: Optional[Tuple[str, ...]] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = Field(None, pattern=SCHEDULE_TIME_PATTERN)
    clear_schedule: bool = False
    approvers: Optional[Tuple[str, ...]] = None

    @field_validator("hashtags")
    @classmethod
    def _normalise_hashtags(cls, value: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        return normalise_hashtags(value) if value is not None else None


class SlaThresholds(BaseModel):
    """
    Per-tenant approval SLA thresholds, in hours.

    Range checks live in the config provider's save path, so a stored value
    can be read back and reported even if it is out of range.
    """
    model_config = ConfigDict(frozen=True)

    warning_hours: int
    breach_hours: int


class NotificationMessage(BaseModel):
    """Outbound message handed to the external sender."""
    model_config = ConfigDict(frozen=True)

    to: str
    to_name: str
    subject: str
    body: str
    sent_at: datetime


class ApprovalEvent(BaseModel):
    """Decision broadcast to the real-time notification layer."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    card_id: str
    card_title: str
    platform: str
    action: ApprovalEventAction
    performed_by: str
    performed_by_email: str = ""
    reason: Optional[str] = None
    timestamp: datetime
