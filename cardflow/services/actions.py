"""
Host-side glue: load, transition, persist, broadcast, notify.

The state machine only computes. This service runs the side effects in the
order the lifecycle needs and turns their failures into retryable warnings:
a failed save keeps the pre-transition card, a failed broadcast or delivery
never reverses a saved decision.
"""
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Tuple, Union

from cardflow.core.logging import get_logger
from cardflow.errors import CardNotFoundError, LedgerError, LifecycleError, PersistenceFailure
from cardflow.models.domain import Actor, ContentCard
from cardflow.models.enums import LifecycleAction
from cardflow.services.bulk_approval import BulkApprovalCoordinator, BulkOutcome
from cardflow.services.collaborators import CardStore
from cardflow.services.notifications import NotificationDispatcher
from cardflow.services.state_machine import ApprovalStateMachine, TransitionResult

logger = get_logger("actions")


@dataclass
class ActionOutcome:
    """
    What happened to one card.

    ``card`` is what the caller should now display: the new card once saved,
    otherwise the card as it was before the action.
    """
    result: TransitionResult
    card: ContentCard
    saved: bool = False
    warnings: List[LifecycleError] = field(default_factory=list)

    @property
    def refused(self) -> bool:
        return not self.result.ok


class CardActionService:
    """Runs lifecycle actions against a CardStore."""

    def __init__(
        self,
        store: CardStore,
        machine: ApprovalStateMachine,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.store = store
        self.machine = machine
        self.dispatcher = dispatcher or machine.dispatcher
        self.bulk = BulkApprovalCoordinator(machine)

    def perform(
        self,
        card_id: str,
        action: Union[LifecycleAction, str],
        actor: Actor,
        payload: Optional[Mapping[str, Any]] = None,
    ) -> ActionOutcome:
        """Load a card, apply ``action`` and, if it was accepted, save it. Raises CardNotFoundError."""
        card = self.store.load_card(card_id)
        result = self.machine.apply(card, action, actor, payload)
        return self.commit(result)

    def commit(self, result: TransitionResult) -> ActionOutcome:
        """Persist an accepted transition, then broadcast and deliver its side effects."""
        outcome = ActionOutcome(result=result, card=result.previous)
        if not result.ok:
            return outcome

        try:
            self.store.update_card(result.card, expected_status=result.previous.status)
        except (PersistenceFailure, LedgerError) as e:
            logger.warning(
                f"Transition not saved: {e.message}",
                extra={"card_id": result.card.id, "action": result.action.value, "code": e.code},
            )
            outcome.warnings.append(e)
            return outcome

        outcome.card = result.card
        outcome.saved = True

        if result.approval_event is not None:
            try:
                self.store.log_approval_event(result.approval_event)
            except PersistenceFailure as e:
                logger.warning(
                    f"Approval event not logged: {e.message}",
                    extra={"card_id": result.card.id, "code": e.code},
                )
                outcome.warnings.append(e)

        if result.notification is not None:
            failure = self.dispatcher.deliver(result.notification)
            if failure is not None:
                outcome.warnings.append(failure)

        return outcome

    def perform_bulk(
        self,
        card_ids: Collection[str],
        action: Union[LifecycleAction, str],
        actor: Actor,
        reason: Optional[str] = None,
    ) -> Tuple[BulkOutcome, Dict[str, ActionOutcome]]:
        """
        Bulk approve or reject, then save each accepted card on its own.

        Returns the coordinator's per-card report and the save outcome of every
        card that was loaded, keyed by id. Ids that cannot be loaded, whether
        deleted or unreadable, are reported by the coordinator as skipped; one
        card failing to load or save does not affect the others.
        """
        action = LifecycleAction(action)
        card_ids = list(dict.fromkeys(card_ids))
        cards = []
        for card_id in card_ids:
            try:
                cards.append(self.store.load_card(card_id))
            except CardNotFoundError:
                continue
            except PersistenceFailure as e:
                logger.warning(
                    f"Card not loaded for bulk {action.value}: {e.message}",
                    extra={"card_id": card_id, "action": action.value, "code": e.code},
                )

        if action == LifecycleAction.APPROVE:
            batch = self.bulk.approve(cards, card_ids, actor)
        elif action == LifecycleAction.REJECT:
            batch = self.bulk.reject(cards, card_ids, actor, reason)
        else:
            raise ValueError(f"Bulk {action.value} is not supported")

        outcomes = {
            item.card_id: self.commit(item.result)
            for item in batch.items
            if item.result is not None
        }
        return batch, outcomes
