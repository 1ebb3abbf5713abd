"""Enums for the content card lifecycle - these define the valid statuses and actions."""
from enum import Enum


class ContentStatus(str, Enum):
    """The six statuses a ContentCard can be in. No other statuses are allowed."""
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    SCHEDULED = "scheduled"
    REJECTED = "rejected"
    PUBLISHED = "published"


class AuditAction(str, Enum):
    """Kinds of fact recorded in a card's audit log."""
    CREATED = "created"
    EDITED = "edited"
    MEDIA_UPLOADED = "media_uploaded"
    MEDIA_REMOVED = "media_removed"
    SUBMITTED_FOR_APPROVAL = "submitted_for_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    STATUS_CHANGED = "status_changed"
    EMAIL_NOTIFICATION = "email_notification"


class LifecycleAction(str, Enum):
    """Actions a caller can ask the state machine to apply."""
    SUBMIT_FOR_APPROVAL = "submit_for_approval"
    APPROVE = "approve"
    REJECT = "reject"
    REVERT_TO_DRAFT = "revert_to_draft"
    MARK_PUBLISHED = "mark_published"
    EDIT = "edit"
    ATTACH_MEDIA = "attach_media"
    REMOVE_MEDIA = "remove_media"


class ApprovalEventAction(str, Enum):
    """Decisions broadcast to the real-time notification layer."""
    APPROVED = "approved"
    REJECTED = "rejected"
    SUBMITTED_FOR_APPROVAL = "submitted_for_approval"
    REVERTED_TO_DRAFT = "reverted_to_draft"


class SlaStatus(str, Enum):
    OK = "ok"
    WARNING = "warning"
    BREACHED = "breached"


class ScheduleStatus(str, Enum):
    """Where a scheduled card's date sits relative to today."""
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    FUTURE = "future"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    MUSIC = "music"


class Platform(str, Enum):
    """Supported social channels."""
    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    LINKEDIN = "linkedin"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    PINTEREST = "pinterest"
    SNAPCHAT = "snapchat"
    THREADS = "threads"
    REDDIT = "reddit"
    WHATSAPP = "whatsapp"
    TELEGRAM = "telegram"

    @property
    def display_name(self) -> str:
        return PLATFORM_NAMES[self]


PLATFORM_NAMES = {
    Platform.INSTAGRAM: "Instagram",
    Platform.FACEBOOK: "Facebook",
    Platform.TWITTER: "X (Twitter)",
    Platform.LINKEDIN: "LinkedIn",
    Platform.TIKTOK: "TikTok",
    Platform.YOUTUBE: "YouTube",
    Platform.PINTEREST: "Pinterest",
    Platform.SNAPCHAT: "Snapchat",
    Platform.THREADS: "Threads",
    Platform.REDDIT: "Reddit",
    Platform.WHATSAPP: "WhatsApp Business",
    Platform.TELEGRAM: "Telegram",
}
