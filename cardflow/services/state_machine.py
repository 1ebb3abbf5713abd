"""
State machine that enforces the content card lifecycle invariants.

This is the core enforcement mechanism - every status change MUST go through
here, whether it comes from the inline action strip, the detail modal or the
bulk approval flow.

Transitions are pure: they take a card and return a TransitionResult holding
a new card value. Nothing is persisted here; the host saves the result (and
can layer a conditional write on top, since the previous card travels with
the result).
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from cardflow.clock import Clock, system_clock
from cardflow.core.logging import get_logger
from cardflow.errors import GuardCode, GuardViolation
from cardflow.models.domain import (
    Actor,
    ApprovalEvent,
    AuditEntry,
    CardEdit,
    ContentCard,
    NotificationMessage,
    normalise_hashtags,
)
from cardflow.models.enums import (
    ApprovalEventAction,
    AuditAction,
    ContentStatus,
    LifecycleAction,
    MediaType,
    Platform,
)
from cardflow.services.audit_ledger import append_many, make_entry
from cardflow.services.collaborators import MemberDirectory
from cardflow.services.notifications import NotificationDispatcher

logger = get_logger("state_machine")

_EDITABLE = frozenset({ContentStatus.DRAFT, ContentStatus.REJECTED})
_UNPUBLISHED = frozenset(set(ContentStatus) - {ContentStatus.PUBLISHED})

# Statuses each action may start from
ALLOWED_FROM = {
    LifecycleAction.SUBMIT_FOR_APPROVAL: _EDITABLE,
    LifecycleAction.APPROVE: frozenset({ContentStatus.PENDING_APPROVAL}),
    LifecycleAction.REJECT: frozenset({ContentStatus.PENDING_APPROVAL}),
    LifecycleAction.REVERT_TO_DRAFT: frozenset(
        {ContentStatus.REJECTED, ContentStatus.PENDING_APPROVAL}
    ),
    LifecycleAction.MARK_PUBLISHED: frozenset({ContentStatus.SCHEDULED}),
    LifecycleAction.EDIT: _EDITABLE,
    LifecycleAction.ATTACH_MEDIA: _UNPUBLISHED,
    LifecycleAction.REMOVE_MEDIA: _UNPUBLISHED,
}

# Actions only a designated approver may take
APPROVER_ONLY = frozenset({LifecycleAction.APPROVE, LifecycleAction.REJECT})

CLEARED_APPROVAL = {"approved_by": None, "approved_by_name": None, "approved_at": None}
CLEARED_REJECTION = {
    "rejected_by": None,
    "rejected_by_name": None,
    "rejected_at": None,
    "rejection_reason": None,
}


@dataclass(frozen=True)
class TransitionResult:
    """
    Outcome of one attempted action.

    On refusal ``card`` is the untouched input card, ``entries`` is empty and
    ``refusal`` says which guard failed.
    """
    action: LifecycleAction
    previous: ContentCard
    card: ContentCard
    refusal: Optional[GuardViolation] = None
    entries: Tuple[AuditEntry, ...] = ()
    notification: Optional[NotificationMessage] = None
    approval_event: Optional[ApprovalEvent] = None

    @property
    def ok(self) -> bool:
        return self.refusal is None

    def unwrap(self) -> ContentCard:
        """Return the new card, raising the GuardViolation if the action was refused."""
        if self.refusal is not None:
            raise self.refusal
        return self.card


def format_schedule(day: date, time: Optional[str] = None) -> str:
    """Render a schedule like "Mar 5, 2026 at 09:30" for ledger details."""
    text = f"{day:%b} {day.day}, {day.year}"
    if time:
        text += f" at {time}"
    return text


def _validation_summary(error: ValidationError) -> str:
    fields = ", ".join(".".join(str(p) for p in e["loc"]) or "changes" for e in error.errors())
    return f"Invalid changes: {fields}."


def _clean_reason(reason: Optional[str]) -> Optional[str]:
    if reason is None:
        return None
    return reason.strip() or None


class ApprovalStateMachine:
    """Validates and applies content card status transitions."""

    def __init__(
        self,
        clock: Clock = system_clock,
        dispatcher: Optional[NotificationDispatcher] = None,
        directory: Optional[MemberDirectory] = None,
    ):
        self.clock = clock
        self.dispatcher = dispatcher or NotificationDispatcher(clock=clock)
        self.directory = directory

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_card(
        self,
        project_id: str,
        platform: Union[Platform, str],
        title: str,
        actor: Actor,
        caption: str = "",
        hashtags: Sequence[str] = (),
        approvers: Sequence[str] = (),
        scheduled_date: Optional[date] = None,
        scheduled_time: Optional[str] = None,
        details: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
        card_id: Optional[str] = None,
    ) -> ContentCard:
        """Build a new draft card whose ledger starts with a ``created`` entry."""
        now = self.clock()
        fields = dict(
            project_id=project_id,
            platform=Platform(platform),
            title=title,
            caption=caption,
            hashtags=normalise_hashtags(hashtags),
            approvers=tuple(approvers),
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            created_by=actor.name,
            created_by_email=actor.email,
            created_at=now,
            extra=dict(extra or {}),
        )
        if card_id:
            fields["id"] = card_id
        card = ContentCard(**fields)
        card = append_many(card, [make_entry(AuditAction.CREATED, actor, now, details)])
        logger.info("Card created", extra={"card_id": card.id, "actor_id": actor.id})
        return card

    # ------------------------------------------------------------------
    # Generic entry point
    # ------------------------------------------------------------------

    def apply(
        self,
        card: ContentCard,
        action: Union[LifecycleAction, str],
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> TransitionResult:
        """
        Apply ``action`` to ``card`` on behalf of ``actor``.

        Payload keys by action:
        - submit_for_approval: approvers (optional override)
        - approve: details
        - reject: reason, details
        - revert_to_draft: reason
        - edit: changes (CardEdit or mapping)
        - attach_media: media_url, media_type, file_name
        """
        action = LifecycleAction(action)
        payload = payload or {}

        if action == LifecycleAction.SUBMIT_FOR_APPROVAL:
            return self.submit_for_approval(card, actor, approvers=payload.get("approvers"))
        if action == LifecycleAction.APPROVE:
            return self.approve(card, actor, details=payload.get("details"))
        if action == LifecycleAction.REJECT:
            return self.reject(
                card, actor, payload.get("reason"), details=payload.get("details")
            )
        if action == LifecycleAction.REVERT_TO_DRAFT:
            return self.revert_to_draft(card, actor, payload.get("reason"))
        if action == LifecycleAction.MARK_PUBLISHED:
            return self.mark_published(card, actor)
        if action == LifecycleAction.EDIT:
            return self.edit(card, actor, payload.get("changes") or {})
        if action == LifecycleAction.ATTACH_MEDIA:
            return self.attach_media(
                card,
                actor,
                media_url=payload.get("media_url"),
                media_type=payload.get("media_type"),
                file_name=payload.get("file_name"),
            )
        return self.remove_media(card, actor)

    # ------------------------------------------------------------------
    # Queries used by the call sites
    # ------------------------------------------------------------------

    def can_approve(self, card: ContentCard, actor: Actor) -> bool:
        """Whether ``actor`` may approve or reject ``card`` right now."""
        return card.status == ContentStatus.PENDING_APPROVAL and card.is_approver(actor)

    def available_actions(self, card: ContentCard, actor: Actor) -> List[LifecycleAction]:
        """Actions whose status and actor guards currently hold."""
        actions = []
        for action, allowed in ALLOWED_FROM.items():
            if card.status not in allowed:
                continue
            if action in APPROVER_ONLY and not card.is_approver(actor):
                continue
            if action == LifecycleAction.REMOVE_MEDIA and card.media_url is None:
                continue
            actions.append(action)
        return actions

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit_for_approval(
        self,
        card: ContentCard,
        actor: Actor,
        approvers: Optional[Iterable[str]] = None,
    ) -> TransitionResult:
        """
        draft / rejected → pending_approval.

        Invariants:
        - At least one approver must be designated
        - Prior decision provenance is cleared
        - The SLA clock restarts from this entry's timestamp
        """
        action = LifecycleAction.SUBMIT_FOR_APPROVAL
        refused = self._check_status(card, action)
        if refused:
            return refused

        if approvers is None:
            effective = card.approvers
        else:
            effective = tuple(dict.fromkeys(a for a in approvers if a))
        if not effective:
            return self._refuse(
                card,
                action,
                GuardCode.NO_APPROVERS,
                "Select at least one approver before submitting for approval.",
            )

        now = self.clock()
        names = ", ".join(self._display_name(member_id) for member_id in effective)
        entry = make_entry(
            AuditAction.SUBMITTED_FOR_APPROVAL,
            actor,
            now,
            f"Submitted for approval to: {names}",
        )
        updates = {
            "status": ContentStatus.PENDING_APPROVAL,
            "approvers": effective,
            **CLEARED_APPROVAL,
            **CLEARED_REJECTION,
        }
        return self._commit(
            card,
            action,
            actor,
            now,
            updates,
            [entry],
            event=ApprovalEventAction.SUBMITTED_FOR_APPROVAL,
        )

    def approve(
        self,
        card: ContentCard,
        actor: Actor,
        details: Optional[str] = None,
    ) -> TransitionResult:
        """
        pending_approval → approved, or scheduled when a date is set.

        Entries are appended as: approved, System ``scheduled`` (if any),
        then the email notification.
        """
        action = LifecycleAction.APPROVE
        refused = self._check_status(card, action) or self._check_approver(card, action, actor)
        if refused:
            return refused

        now = self.clock()
        entries = [make_entry(AuditAction.APPROVED, actor, now, details or "Content approved")]

        if card.scheduled_date is not None:
            new_status = ContentStatus.SCHEDULED
            entries.append(
                make_entry(
                    AuditAction.SCHEDULED,
                    None,
                    now,
                    f"Auto-scheduled for {format_schedule(card.scheduled_date, card.scheduled_time)}"
                    f" on {card.platform.display_name}",
                )
            )
        else:
            new_status = ContentStatus.APPROVED

        updates = {
            "status": new_status,
            "approved_by": actor.id,
            "approved_by_name": actor.name,
            "approved_at": now,
            **CLEARED_REJECTION,
        }
        return self._commit(
            card,
            action,
            actor,
            now,
            updates,
            entries,
            notify=ApprovalEventAction.APPROVED,
            event=ApprovalEventAction.APPROVED,
        )

    def reject(
        self,
        card: ContentCard,
        actor: Actor,
        reason: Optional[str],
        details: Optional[str] = None,
    ) -> TransitionResult:
        """
        pending_approval → rejected.

        A non-blank reason is mandatory; it is stored (stripped) as the
        rejection reason and, unless ``details`` overrides it, as the entry text.
        """
        action = LifecycleAction.REJECT
        refused = self._check_status(card, action) or self._check_approver(card, action, actor)
        if refused:
            return refused

        reason = _clean_reason(reason)
        if reason is None:
            return self._refuse(
                card, action, GuardCode.REASON_REQUIRED, "A rejection reason is required."
            )

        now = self.clock()
        entry = make_entry(AuditAction.REJECTED, actor, now, details or reason)
        updates = {
            "status": ContentStatus.REJECTED,
            "rejected_by": actor.id,
            "rejected_by_name": actor.name,
            "rejected_at": now,
            "rejection_reason": reason,
            **CLEARED_APPROVAL,
        }
        return self._commit(
            card,
            action,
            actor,
            now,
            updates,
            [entry],
            notify=ApprovalEventAction.REJECTED,
            reason=reason,
            event=ApprovalEventAction.REJECTED,
        )

    def revert_to_draft(
        self,
        card: ContentCard,
        actor: Actor,
        reason: Optional[str],
    ) -> TransitionResult:
        """rejected / pending_approval → draft, clearing all decision provenance."""
        action = LifecycleAction.REVERT_TO_DRAFT
        refused = self._check_status(card, action)
        if refused:
            return refused

        reason = _clean_reason(reason)
        if reason is None:
            return self._refuse(
                card, action, GuardCode.REASON_REQUIRED, "A reason is required to revert to draft."
            )

        now = self.clock()
        entry = make_entry(
            AuditAction.STATUS_CHANGED,
            actor,
            now,
            f"Reverted to draft status for re-editing: {reason}",
        )
        updates = {"status": ContentStatus.DRAFT, **CLEARED_APPROVAL, **CLEARED_REJECTION}
        return self._commit(
            card,
            action,
            actor,
            now,
            updates,
            [entry],
            notify=ApprovalEventAction.REVERTED_TO_DRAFT,
            reason=reason,
            event=ApprovalEventAction.REVERTED_TO_DRAFT,
        )

    def mark_published(self, card: ContentCard, actor: Actor) -> TransitionResult:
        """scheduled → published. Any actor may confirm a post went live."""
        action = LifecycleAction.MARK_PUBLISHED
        refused = self._check_status(card, action)
        if refused:
            return refused

        now = self.clock()
        entry = make_entry(
            AuditAction.PUBLISHED,
            actor,
            now,
            f"Marked as published on {card.platform.display_name}",
        )
        return self._commit(card, action, actor, now, {"status": ContentStatus.PUBLISHED}, [entry])

    def edit(
        self,
        card: ContentCard,
        actor: Actor,
        changes: Union[CardEdit, Mapping[str, Any]],
    ) -> TransitionResult:
        """
        Change content fields of a draft or rejected card without changing its status.

        Every accepted save is recorded, including one that changes nothing.
        """
        action = LifecycleAction.EDIT
        refused = self._check_status(card, action)
        if refused:
            return refused

        if not isinstance(changes, CardEdit):
            try:
                changes = CardEdit.model_validate(changes)
            except ValidationError as e:
                return self._refuse(
                    card, action, GuardCode.INVALID_PAYLOAD, _validation_summary(e)
                )

        updates: Dict[str, Any] = {}
        changed: List[str] = []

        if changes.title is not None and changes.title != card.title:
            updates["title"] = changes.title
            changed.append("title")
        if changes.caption is not None and changes.caption != card.caption:
            updates["caption"] = changes.caption
            changed.append("caption")
        if changes.hashtags is not None and changes.hashtags != card.hashtags:
            updates["hashtags"] = changes.hashtags
            changed.append("hashtags")

        if changes.clear_schedule:
            new_date, new_time = None, None
        else:
            new_date = changes.scheduled_date if changes.scheduled_date is not None else card.scheduled_date
            new_time = changes.scheduled_time if changes.scheduled_time is not None else card.scheduled_time
        if (new_date, new_time) != (card.scheduled_date, card.scheduled_time):
            updates["scheduled_date"] = new_date
            updates["scheduled_time"] = new_time
            changed.append("schedule")

        if changes.approvers is not None:
            approvers = tuple(dict.fromkeys(a for a in changes.approvers if a))
            if approvers != card.approvers:
                updates["approvers"] = approvers
                changed.append("approvers")

        if changed:
            details = f"Content updated — {', '.join(changed)} modified"
        else:
            details = "Content saved — no fields modified"

        now = self.clock()
        updates["last_edited_by"] = actor.name
        updates["last_edited_at"] = now
        entry = make_entry(AuditAction.EDITED, actor, now, details)
        return self._commit(card, action, actor, now, updates, [entry])

    def attach_media(
        self,
        card: ContentCard,
        actor: Actor,
        media_url: Optional[str],
        media_type: Union[MediaType, str, None],
        file_name: Optional[str],
    ) -> TransitionResult:
        """Attach (or replace) the card's media asset; used by uploads and the AI generator."""
        action = LifecycleAction.ATTACH_MEDIA
        refused = self._check_status(card, action)
        if refused:
            return refused

        missing = [
            name
            for name, value in (("media_url", media_url), ("file_name", file_name))
            if not value
        ]
        if missing:
            return self._refuse(
                card, action, GuardCode.INVALID_PAYLOAD, f"Missing {', '.join(missing)}."
            )
        try:
            media_type = MediaType(media_type)
        except ValueError:
            return self._refuse(
                card, action, GuardCode.INVALID_PAYLOAD, f"Unsupported media type: {media_type!r}."
            )

        now = self.clock()
        entry = make_entry(
            AuditAction.MEDIA_UPLOADED, actor, now, f"Uploaded {media_type.value}: {file_name}"
        )
        updates = {
            "media_url": media_url,
            "media_type": media_type,
            "media_file_name": file_name,
            "last_edited_by": actor.name,
            "last_edited_at": now,
        }
        return self._commit(card, action, actor, now, updates, [entry])

    def remove_media(self, card: ContentCard, actor: Actor) -> TransitionResult:
        action = LifecycleAction.REMOVE_MEDIA
        refused = self._check_status(card, action)
        if refused:
            return refused
        if card.media_url is None:
            return self._refuse(card, action, GuardCode.NO_MEDIA, "Card has no media to remove.")

        now = self.clock()
        entry = make_entry(AuditAction.MEDIA_REMOVED, actor, now, "Media asset removed")
        updates = {
            "media_url": None,
            "media_type": None,
            "media_file_name": None,
            "last_edited_by": actor.name,
            "last_edited_at": now,
        }
        return self._commit(card, action, actor, now, updates, [entry])

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_status(
        self, card: ContentCard, action: LifecycleAction
    ) -> Optional[TransitionResult]:
        allowed = ALLOWED_FROM[action]
        if card.status in allowed:
            return None
        expected = " or ".join(sorted(s.value for s in allowed))
        return self._refuse(
            card,
            action,
            GuardCode.INVALID_STATUS,
            f"Cannot {action.value} a card in {card.status.value}; it must be {expected}.",
        )

    def _check_approver(
        self, card: ContentCard, action: LifecycleAction, actor: Actor
    ) -> Optional[TransitionResult]:
        if card.is_approver(actor):
            return None
        return self._refuse(
            card,
            action,
            GuardCode.NOT_AN_APPROVER,
            f"{actor.name} is not a designated approver for this card.",
        )

    def _refuse(
        self,
        card: ContentCard,
        action: LifecycleAction,
        guard: GuardCode,
        message: str,
    ) -> TransitionResult:
        violation = GuardViolation(guard, message, action=action.value, status=card.status.value)
        logger.info(
            f"Refused {action.value}: {message}",
            extra={"card_id": card.id, "action": action.value, "code": guard.value},
        )
        return TransitionResult(action=action, previous=card, card=card, refusal=violation)

    def _commit(
        self,
        card: ContentCard,
        action: LifecycleAction,
        actor: Actor,
        now: datetime,
        updates: Mapping[str, Any],
        entries: List[AuditEntry],
        notify: Optional[ApprovalEventAction] = None,
        reason: Optional[str] = None,
        event: Optional[ApprovalEventAction] = None,
    ) -> TransitionResult:
        notification = None
        if notify is not None:
            notice_entry, notification = self.dispatcher.dispatch(
                card, notify, actor, reason, timestamp=now
            )
            entries = entries + [notice_entry]

        updated = append_many(card.model_copy(update=dict(updates)), entries)

        approval_event = None
        if event is not None:
            approval_event = ApprovalEvent(
                card_id=card.id,
                card_title=card.title,
                platform=card.platform.display_name,
                action=event,
                performed_by=actor.name,
                performed_by_email=actor.email,
                reason=reason,
                timestamp=now,
            )

        logger.info(
            f"{action.value}: {card.status.value} -> {updated.status.value}",
            extra={
                "card_id": card.id,
                "action": action.value,
                "actor_id": actor.id,
                "status": updated.status.value,
            },
        )
        return TransitionResult(
            action=action,
            previous=card,
            card=updated,
            entries=updated.audit_log[len(card.audit_log):],
            notification=notification,
            approval_event=approval_event,
        )

    def _display_name(self, member_id: str) -> str:
        if self.directory is None:
            return member_id
        return self.directory.display_name(member_id) or member_id
