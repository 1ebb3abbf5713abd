"""
Append-only audit ledger over a card's ``audit_log``.

The ledger is the single source of historical truth. It only ever grows:
there is no remove or rewrite operation here, and the only way a ledger
shrinks is the whole card being deleted by the store.
"""
from datetime import datetime
from typing import Iterable, Optional, Tuple, Union

from cardflow.errors import DuplicateEntryError
from cardflow.models.domain import (
    SYSTEM_EMAIL,
    SYSTEM_NAME,
    Actor,
    AuditEntry,
    ContentCard,
)
from cardflow.models.enums import AuditAction

ActionFilter = Union[AuditAction, Iterable[AuditAction], None]


def make_entry(
    action: AuditAction,
    actor: Optional[Actor],
    timestamp: datetime,
    details: Optional[str] = None,
) -> AuditEntry:
    """Build an entry attributed to ``actor``, or to System when actor is None."""
    if actor is None:
        return AuditEntry(
            action=action,
            performed_by=SYSTEM_NAME,
            performed_by_email=SYSTEM_EMAIL,
            timestamp=timestamp,
            details=details,
        )
    return AuditEntry(
        action=action,
        performed_by=actor.name,
        performed_by_email=actor.email,
        timestamp=timestamp,
        details=details,
    )


def append(card: ContentCard, entry: AuditEntry) -> ContentCard:
    """
    Return a new card whose audit log is extended by ``entry``.

    Invariants:
    - The input card is never mutated
    - Entry ids are unique within the card
    - Timestamps never go backwards: an entry older than the current tail is
      recorded at the tail's timestamp
    """
    return append_many(card, (entry,))


def append_many(card: ContentCard, entries: Iterable[AuditEntry]) -> ContentCard:
    """Append several entries in order; all-or-nothing."""
    log = list(card.audit_log)
    seen = {e.id for e in log}

    for entry in entries:
        if entry.id in seen:
            raise DuplicateEntryError(card.id, entry.id)
        if log and entry.timestamp < log[-1].timestamp:
            entry = entry.model_copy(update={"timestamp": log[-1].timestamp})
        log.append(entry)
        seen.add(entry.id)

    return card.model_copy(update={"audit_log": tuple(log)})


def entries_of(card: ContentCard, action: ActionFilter = None) -> Tuple[AuditEntry, ...]:
    """Entries oldest first, optionally restricted to one or more actions."""
    if action is None:
        return card.audit_log
    if isinstance(action, AuditAction):
        wanted = {action}
    else:
        wanted = set(action)
    return tuple(e for e in card.audit_log if e.action in wanted)


def latest(card: ContentCard, action: AuditAction) -> Optional[AuditEntry]:
    """Most recent entry of a kind; ties on timestamp go to the later append."""
    found = None
    for entry in card.audit_log:
        if entry.action == action and (found is None or entry.timestamp >= found.timestamp):
            found = entry
    return found
