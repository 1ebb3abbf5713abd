"""
Storage records - the SQLAlchemy side of the persistence adapter.

These are not domain objects; ``cardflow.repository`` converts them to and
from the frozen ContentCard / AuditEntry values the engine works with.
"""
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship

from cardflow.database import Base
from cardflow.models.enums import (
    ApprovalEventAction,
    AuditAction,
    ContentStatus,
    MediaType,
    Platform,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CardRecord(Base):
    """
    A stored content card.

    Invariants:
    - status is always one of the six lifecycle statuses
    - audit entries are only ever inserted, never updated or deleted
      (except by deleting the whole card)
    """
    __tablename__ = "cards"

    id = Column(String, primary_key=True, index=True)
    project_id = Column(String, nullable=False, index=True)
    platform = Column(SQLEnum(Platform), nullable=False)
    channel = Column(String, nullable=False, default="social-media")

    title = Column(String, nullable=False)
    caption = Column(String, nullable=False, default="")
    hashtags = Column(JSON, nullable=False, default=list)

    status = Column(SQLEnum(ContentStatus), nullable=False, default=ContentStatus.DRAFT, index=True)

    approvers = Column(JSON, nullable=False, default=list)
    approved_by = Column(String, nullable=True)
    approved_by_name = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(String, nullable=True)
    rejected_by_name = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(String, nullable=True)

    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(String, nullable=True)  # HH:MM

    media_url = Column(String, nullable=True)
    media_type = Column(SQLEnum(MediaType), nullable=True)
    media_file_name = Column(String, nullable=True)

    created_by = Column(String, nullable=False)
    created_by_email = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_edited_by = Column(String, nullable=True)
    last_edited_at = Column(DateTime(timezone=True), nullable=True)

    extra = Column(JSON, nullable=False, default=dict)

    # Relationships
    audit_entries = relationship(
        "AuditEntryRecord",
        back_populates="card",
        cascade="all, delete-orphan",
        order_by="AuditEntryRecord.position",
    )


class AuditEntryRecord(Base):
    """One row per ledger entry; ``position`` preserves append order."""
    __tablename__ = "audit_entries"
    __table_args__ = (UniqueConstraint("card_id", "position", name="uq_audit_entry_position"),)

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False)
    card_id = Column(String, ForeignKey("cards.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    action = Column(SQLEnum(AuditAction), nullable=False, index=True)
    performed_by = Column(String, nullable=False)
    performed_by_email = Column(String, nullable=False, default="")
    timestamp = Column(DateTime(timezone=True), nullable=False)
    details = Column(String, nullable=True)

    card = relationship("CardRecord", back_populates="audit_entries")


class ApprovalEventRecord(Base):
    """Decision feed consumed by the real-time notification layer."""
    __tablename__ = "approval_events"

    id = Column(String, primary_key=True)
    card_id = Column(String, nullable=False, index=True)
    card_title = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    action = Column(SQLEnum(ApprovalEventAction), nullable=False)
    performed_by = Column(String, nullable=False)
    performed_by_email = Column(String, nullable=False, default="")
    reason = Column(String, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)


class SlaConfigRecord(Base):
    """Per-tenant SLA thresholds, keyed by tenant id."""
    __tablename__ = "sla_configs"

    tenant_id = Column(String, primary_key=True)
    warning_hours = Column(Integer, nullable=False)
    breach_hours = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
