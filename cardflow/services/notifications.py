"""
Decision notifications.

Building a notification is pure: ``dispatch`` returns the outbound message
and the ``email_notification`` ledger entry that records it. Delivery is a
separate step through an external sender, and a failed delivery never
reverses the decision it describes.
"""
from datetime import datetime
from typing import Optional, Tuple

from cardflow.clock import Clock, system_clock
from cardflow.config import settings
from cardflow.core.logging import get_logger
from cardflow.errors import NotificationFailure
from cardflow.models.domain import (
    Actor,
    AuditEntry,
    ContentCard,
    NotificationMessage,
)
from cardflow.models.enums import ApprovalEventAction, AuditAction
from cardflow.services.audit_ledger import make_entry
from cardflow.services.collaborators import NotificationSender

logger = get_logger("notifications")

# action -> (verb, emoji, subject)
ACTION_LABELS = {
    ApprovalEventAction.APPROVED: ("approved", "✅", "Your content has been approved"),
    ApprovalEventAction.REJECTED: ("rejected", "❌", "Your content has been rejected"),
    ApprovalEventAction.REVERTED_TO_DRAFT: (
        "reverted to draft",
        "🔄",
        "Your content has been reverted to draft",
    ),
}


class LoggingSender:
    """Sender that only writes the message to the log. Used until a real mail API is wired in."""

    def send(self, message: NotificationMessage) -> None:
        logger.info(f"Notification to {message.to} | Subject: {message.subject}")


class NotificationDispatcher:
    """Builds creator-facing notifications for approval decisions."""

    def __init__(
        self,
        sender: Optional[NotificationSender] = None,
        clock: Clock = system_clock,
        portal_name: str = settings.portal_name,
        signature: str = settings.notification_signature,
    ):
        self.sender = sender or LoggingSender()
        self.clock = clock
        self.portal_name = portal_name
        self.signature = signature

    def dispatch(
        self,
        card: ContentCard,
        action: ApprovalEventAction,
        actor: Actor,
        reason: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Tuple[AuditEntry, NotificationMessage]:
        """
        Build the message for ``action`` and the ledger entry recording it.

        ``timestamp`` lets the state machine stamp the entry with the time its
        transition began, so it sorts with the decision it belongs to.
        """
        if action not in ACTION_LABELS:
            raise ValueError(f"No notification is sent for {action.value}")

        verb, emoji, subject = ACTION_LABELS[action]
        sent_at = timestamp or self.clock()
        platform_name = card.platform.display_name

        body_lines = [
            f"Hi {card.created_by},",
            "",
            f'Your content "{card.title}" on {platform_name} has been {verb} by {actor.name}.',
        ]
        if reason:
            body_lines += ["", f"Reason: {reason}"]
        body_lines += [
            "",
            f"Please log in to the {self.portal_name} to view details.",
            "",
            f"— {self.signature}",
        ]

        message = NotificationMessage(
            to=card.created_by_email,
            to_name=card.created_by,
            subject=f'{emoji} {subject} — "{card.title}"',
            body="\n".join(body_lines),
            sent_at=sent_at,
        )

        details = (
            f"Email notification sent to {card.created_by} ({card.created_by_email}): "
            f"Content {verb} by {actor.name}"
        )
        if reason:
            details += f' — "{reason}"'
        entry = make_entry(AuditAction.EMAIL_NOTIFICATION, None, sent_at, details)

        return entry, message

    def deliver(self, message: NotificationMessage) -> Optional[NotificationFailure]:
        """
        Hand ``message`` to the sender.

        Returns None on success, or the NotificationFailure that was logged.
        The ledger entry was already appended either way.
        """
        try:
            self.sender.send(message)
        except Exception as exc:
            failure = NotificationFailure(f"Delivery to {message.to} failed: {exc}")
            logger.warning(failure.message, exc_info=True, extra={"code": failure.code})
            return failure
        return None
