"""
Contracts the engine requires from its host.

The engine never implements these itself; ``cardflow.repository`` provides
SQLAlchemy-backed versions and the tests provide in-memory doubles.
"""
from typing import Optional, Protocol

from cardflow.models.domain import (
    ApprovalEvent,
    ContentCard,
    NotificationMessage,
    SlaThresholds,
)
from cardflow.models.enums import ContentStatus


class CardStore(Protocol):
    """
    Persistence collaborator.

    ``update_card`` must honour ``expected_status`` as a conditional write:
    if the stored card is no longer in that status, raise StaleCardError
    instead of overwriting. Failures raise PersistenceFailure.
    """

    def load_card(self, card_id: str) -> ContentCard:
        ...

    def update_card(
        self,
        card: ContentCard,
        expected_status: Optional[ContentStatus] = None,
    ) -> None:
        ...

    def delete_card(self, card_id: str) -> None:
        ...

    def log_approval_event(self, event: ApprovalEvent) -> None:
        ...


class MemberDirectory(Protocol):
    """Resolves a member id to a display name; None when unknown."""

    def display_name(self, member_id: str) -> Optional[str]:
        ...


class NotificationSender(Protocol):
    """Delivers a built message. May raise; the engine never rolls back on failure."""

    def send(self, message: NotificationMessage) -> None:
        ...


class SlaConfigStore(Protocol):
    """Key-value storage for per-tenant thresholds."""

    def get(self, tenant_id: str) -> Optional[SlaThresholds]:
        ...

    def put(self, tenant_id: str, thresholds: SlaThresholds) -> None:
        ...
