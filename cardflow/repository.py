"""
SQLAlchemy adapters for the engine's persistence collaborators.

SqlCardStore enforces two things the engine relies on but cannot guarantee
itself: stored ledgers only grow, and ``update_card`` can be made
conditional on the stored status (compare-and-swap on status).
"""
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cardflow.core.logging import get_logger
from cardflow.errors import (
    CardNotFoundError,
    LedgerRewriteError,
    PersistenceFailure,
    StaleCardError,
)
from cardflow.models.domain import ApprovalEvent, AuditEntry, ContentCard, SlaThresholds
from cardflow.models.enums import ContentStatus
from cardflow.models.records import (
    ApprovalEventRecord,
    AuditEntryRecord,
    CardRecord,
    SlaConfigRecord,
)

logger = get_logger("repository")

# Card fields stored as plain columns
_SCALAR_FIELDS = (
    "project_id",
    "platform",
    "channel",
    "title",
    "caption",
    "status",
    "approved_by",
    "approved_by_name",
    "approved_at",
    "rejected_by",
    "rejected_by_name",
    "rejected_at",
    "rejection_reason",
    "scheduled_date",
    "scheduled_time",
    "media_url",
    "media_type",
    "media_file_name",
    "created_by",
    "created_by_email",
    "created_at",
    "last_edited_by",
    "last_edited_at",
)


def _entry_record(entry: AuditEntry, position: int) -> AuditEntryRecord:
    return AuditEntryRecord(
        id=entry.id,
        position=position,
        action=entry.action,
        performed_by=entry.performed_by,
        performed_by_email=entry.performed_by_email,
        timestamp=entry.timestamp,
        details=entry.details,
    )


def _to_entry(record: AuditEntryRecord) -> AuditEntry:
    return AuditEntry(
        id=record.id,
        action=record.action,
        performed_by=record.performed_by,
        performed_by_email=record.performed_by_email,
        timestamp=record.timestamp,
        details=record.details,
    )


def _to_card(record: CardRecord) -> ContentCard:
    fields = {name: getattr(record, name) for name in _SCALAR_FIELDS}
    return ContentCard(
        id=record.id,
        hashtags=tuple(record.hashtags or ()),
        approvers=tuple(record.approvers or ()),
        extra=dict(record.extra or {}),
        audit_log=tuple(_to_entry(e) for e in record.audit_entries),
        **fields,
    )


def _copy_fields(card: ContentCard, record: CardRecord) -> None:
    for name in _SCALAR_FIELDS:
        setattr(record, name, getattr(card, name))
    record.hashtags = list(card.hashtags)
    record.approvers = list(card.approvers)
    record.extra = dict(card.extra)


def _to_event(record: ApprovalEventRecord) -> ApprovalEvent:
    return ApprovalEvent(
        id=record.id,
        card_id=record.card_id,
        card_title=record.card_title,
        platform=record.platform,
        action=record.action,
        performed_by=record.performed_by,
        performed_by_email=record.performed_by_email,
        reason=record.reason,
        timestamp=record.timestamp,
    )


class SqlCardStore:
    """CardStore backed by a SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    def add_card(self, card: ContentCard) -> None:
        if self.db.get(CardRecord, card.id) is not None:
            raise PersistenceFailure(f"Content card {card.id} already exists")
        record = CardRecord(id=card.id)
        _copy_fields(card, record)
        record.audit_entries = [_entry_record(e, i) for i, e in enumerate(card.audit_log)]
        self.db.add(record)
        self._commit()

    def load_card(self, card_id: str) -> ContentCard:
        return _to_card(self._get(card_id))

    def list_cards(
        self,
        project_id: Optional[str] = None,
        status: Optional[ContentStatus] = None,
    ) -> List[ContentCard]:
        query = self.db.query(CardRecord)
        if project_id is not None:
            query = query.filter(CardRecord.project_id == project_id)
        if status is not None:
            query = query.filter(CardRecord.status == status)
        return [_to_card(r) for r in query.order_by(CardRecord.created_at.desc()).all()]

    def update_card(
        self,
        card: ContentCard,
        expected_status: Optional[ContentStatus] = None,
    ) -> None:
        """
        Save ``card``, inserting only ledger entries not yet stored.

        Raises StaleCardError when ``expected_status`` no longer matches the
        stored status, and LedgerRewriteError when the stored ledger is not a
        prefix of the card's ledger.
        """
        record = self._get(card.id)

        if expected_status is not None and record.status != expected_status:
            raise StaleCardError(card.id, expected_status.value, record.status.value)

        stored = list(record.audit_entries)
        if len(card.audit_log) < len(stored) or any(
            s.id != e.id for s, e in zip(stored, card.audit_log)
        ):
            raise LedgerRewriteError(card.id)

        _copy_fields(card, record)
        for position, entry in enumerate(card.audit_log[len(stored):], start=len(stored)):
            record.audit_entries.append(_entry_record(entry, position))
        self._commit()

    def delete_card(self, card_id: str) -> None:
        self.db.delete(self._get(card_id))
        self._commit()
        logger.info("Card deleted", extra={"card_id": card_id})

    def log_approval_event(self, event: ApprovalEvent) -> None:
        self.db.add(
            ApprovalEventRecord(
                id=event.id,
                card_id=event.card_id,
                card_title=event.card_title,
                platform=event.platform,
                action=event.action,
                performed_by=event.performed_by,
                performed_by_email=event.performed_by_email,
                reason=event.reason,
                timestamp=event.timestamp,
            )
        )
        self._commit()

    def recent_approval_events(self, limit: int = 50) -> List[ApprovalEvent]:
        """Newest first."""
        records = (
            self.db.query(ApprovalEventRecord)
            .order_by(ApprovalEventRecord.timestamp.desc())
            .limit(limit)
            .all()
        )
        return [_to_event(r) for r in records]

    def _get(self, card_id: str) -> CardRecord:
        try:
            record = self.db.get(CardRecord, card_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"Database read failed: {e}") from e
        if record is None:
            raise CardNotFoundError(card_id)
        return record

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"Database write failed: {e}") from e


class SqlSlaConfigStore:
    """SlaConfigStore backed by the ``sla_configs`` table."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, tenant_id: str) -> Optional[SlaThresholds]:
        record = self.db.get(SlaConfigRecord, tenant_id)
        if record is None:
            return None
        return SlaThresholds(warning_hours=record.warning_hours, breach_hours=record.breach_hours)

    def put(self, tenant_id: str, thresholds: SlaThresholds) -> None:
        record = self.db.get(SlaConfigRecord, tenant_id)
        if record is None:
            record = SlaConfigRecord(tenant_id=tenant_id)
            self.db.add(record)
        record.warning_hours = thresholds.warning_hours
        record.breach_hours = thresholds.breach_hours
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(f"SLA config write failed: {e}") from e
