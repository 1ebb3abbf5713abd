"""
Typed exceptions for the content card lifecycle engine.

Every exception carries a machine-readable ``code`` so hosts can map it to a
response without parsing messages:

    LifecycleError (base)
    |
    +-- GuardViolation          action attempted outside its state/actor guard
    +-- LedgerError
    |   +-- DuplicateEntryError
    |   +-- LedgerRewriteError
    +-- PersistenceFailure      store rejected a computed transition (retryable)
    |   +-- CardNotFoundError
    |   +-- StaleCardError
    +-- NotificationFailure     outbound message could not be delivered
    +-- ConfigValidationError   SLA thresholds rejected before save
"""
from enum import Enum
from typing import Optional


class LifecycleError(Exception):
    """Base class for all engine errors."""

    code = "LIFECYCLE_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class GuardCode(str, Enum):
    """Which guard refused an action."""
    INVALID_STATUS = "INVALID_STATUS"
    NO_APPROVERS = "NO_APPROVERS"
    NOT_AN_APPROVER = "NOT_AN_APPROVER"
    REASON_REQUIRED = "REASON_REQUIRED"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    NO_MEDIA = "NO_MEDIA"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"


class GuardViolation(LifecycleError):
    """
    An action was refused because its guard did not hold.

    This is NOT a failure - it's the engine working correctly. The state
    machine returns it inside a TransitionResult rather than raising it, so a
    refused action is a no-op that never aborts a batch.
    """

    def __init__(
        self,
        guard: GuardCode,
        message: str,
        action: Optional[str] = None,
        status: Optional[str] = None,
    ):
        self.guard = guard
        self.code = guard.value
        self.action = action
        self.status = status
        super().__init__(message)


class LedgerError(LifecycleError):
    code = "LEDGER_ERROR"


class DuplicateEntryError(LedgerError):
    """An entry id already exists in the card's ledger."""

    code = "DUPLICATE_AUDIT_ENTRY"

    def __init__(self, card_id: str, entry_id: str):
        self.card_id = card_id
        self.entry_id = entry_id
        super().__init__(f"Audit entry {entry_id} already exists on card {card_id}")


class LedgerRewriteError(LedgerError):
    """A persisted ledger prefix would be altered, shortened or reordered."""

    code = "LEDGER_REWRITE"

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(
            f"Audit log of card {card_id} is append-only; stored entries cannot change"
        )


class PersistenceFailure(LifecycleError):
    """
    The store rejected an already-computed transition.

    Callers keep the pre-transition card and surface this as a retryable
    warning.
    """

    code = "PERSISTENCE_FAILURE"
    retryable = True


class CardNotFoundError(PersistenceFailure):
    code = "CARD_NOT_FOUND"
    retryable = False

    def __init__(self, card_id: str):
        self.card_id = card_id
        super().__init__(f"Content card {card_id} not found")


class StaleCardError(PersistenceFailure):
    """Conditional write lost: the stored status moved on since the card was read."""

    code = "STALE_CARD"
    retryable = False

    def __init__(self, card_id: str, expected_status: str, actual_status: str):
        self.card_id = card_id
        self.expected_status = expected_status
        self.actual_status = actual_status
        super().__init__(
            f"Card {card_id} is {actual_status}, expected {expected_status}; reload and retry"
        )


class NotificationFailure(LifecycleError):
    """Delivery of a decision notification failed. Never reverses the decision."""

    code = "NOTIFICATION_FAILURE"
    retryable = True


class ConfigValidationError(LifecycleError):
    """SLA thresholds rejected locally, before the store is touched."""

    code = "CONFIG_VALIDATION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid SLA thresholds: {reason}")
