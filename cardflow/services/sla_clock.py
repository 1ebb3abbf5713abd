"""
SLA clock - read-only derivations over a card's ledger.

Nothing here mutates a card or caches state on it. The clock start is
recomputed from the ledger on every call so a resubmission resets it, and
thresholds always arrive as an explicit argument from the config provider.
"""
import math
from datetime import datetime
from typing import Dict, Iterable, Optional

from cardflow.clock import Clock, system_clock
from cardflow.models.domain import ContentCard, SlaThresholds
from cardflow.models.enums import AuditAction, ContentStatus, ScheduleStatus, SlaStatus
from cardflow.services.audit_ledger import latest

SECONDS_PER_HOUR = 60 * 60


def sla_start_time(card: ContentCard) -> datetime:
    """Timestamp of the most recent submission, else the card's creation time."""
    submitted = latest(card, AuditAction.SUBMITTED_FOR_APPROVAL)
    if submitted is not None:
        return submitted.timestamp
    return card.created_at


def sla_hours_elapsed(card: ContentCard, clock: Clock = system_clock) -> Optional[float]:
    """Hours since the clock started; None unless the card is pending approval."""
    if card.status != ContentStatus.PENDING_APPROVAL:
        return None
    elapsed = clock() - sla_start_time(card)
    return elapsed.total_seconds() / SECONDS_PER_HOUR


def sla_status(
    card: ContentCard,
    thresholds: SlaThresholds,
    clock: Clock = system_clock,
) -> Optional[SlaStatus]:
    """
    Three-valued status for pending cards.

    Boundaries are inclusive: reaching warning_hours is already a warning,
    reaching breach_hours is already a breach.
    """
    hours = sla_hours_elapsed(card, clock)
    if hours is None:
        return None
    if hours >= thresholds.breach_hours:
        return SlaStatus.BREACHED
    if hours >= thresholds.warning_hours:
        return SlaStatus.WARNING
    return SlaStatus.OK


def sla_remaining_hours(
    card: ContentCard,
    thresholds: SlaThresholds,
    clock: Clock = system_clock,
) -> float:
    """Hours left before breach, clamped at zero. Non-pending cards count as 0 elapsed."""
    elapsed = sla_hours_elapsed(card, clock) or 0.0
    return max(0.0, thresholds.breach_hours - elapsed)


def format_duration(hours: float) -> str:
    """Render hours as "< 1m", "45m", "3h 12m" or "1d 6h"."""
    total_minutes = math.floor(hours * 60)
    if total_minutes < 1:
        return "< 1m"
    days, rem = divmod(total_minutes, 60 * 24)
    rem_hours, rem_minutes = divmod(rem, 60)
    if days > 0:
        return f"{days}d {rem_hours}h"
    if rem_hours > 0:
        return f"{rem_hours}h {rem_minutes}m"
    return f"{rem_minutes}m"


def sla_summary(
    cards: Iterable[ContentCard],
    thresholds: SlaThresholds,
    clock: Clock = system_clock,
) -> Dict[SlaStatus, int]:
    """Count pending cards per SLA status, for dashboard badges."""
    counts = {status: 0 for status in SlaStatus}
    for card in cards:
        status = sla_status(card, thresholds, clock)
        if status is not None:
            counts[status] += 1
    return counts


def schedule_status(card: ContentCard, clock: Clock = system_clock) -> Optional[ScheduleStatus]:
    """Whether a scheduled card is due today, overdue, or still in the future."""
    if card.status != ContentStatus.SCHEDULED or card.scheduled_date is None:
        return None
    today = clock().date()
    if card.scheduled_date == today:
        return ScheduleStatus.DUE_TODAY
    if card.scheduled_date < today:
        return ScheduleStatus.OVERDUE
    return ScheduleStatus.FUTURE
