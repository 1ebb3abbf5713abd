"""
Bulk approve / reject across a caller-selected set of cards.

Selection state belongs to the caller. This module only decides which cards
are selectable and then runs each selected card through the same
ApprovalStateMachine the single-card flows use, re-checking every guard at
execution time. A stale or unauthorized card is skipped and reported; it
never fails the rest of the batch.
"""
from dataclasses import dataclass, field
from typing import Collection, FrozenSet, Iterable, List, Optional

from cardflow.core.logging import get_logger
from cardflow.errors import GuardCode, GuardViolation
from cardflow.models.domain import Actor, ContentCard
from cardflow.models.enums import LifecycleAction
from cardflow.services.state_machine import ApprovalStateMachine, TransitionResult

logger = get_logger("bulk_approval")


@dataclass(frozen=True)
class BulkItemOutcome:
    """Per-card result: the transition, or why the card was skipped."""
    card_id: str
    result: Optional[TransitionResult] = None
    refusal: Optional[GuardViolation] = None

    @property
    def ok(self) -> bool:
        return self.refusal is None and self.result is not None


@dataclass
class BulkOutcome:
    action: LifecycleAction
    items: List[BulkItemOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> List[BulkItemOutcome]:
        return [item for item in self.items if item.ok]

    @property
    def skipped(self) -> List[BulkItemOutcome]:
        return [item for item in self.items if not item.ok]

    @property
    def cards(self) -> List[ContentCard]:
        """Updated cards for every applied transition, in batch order."""
        return [item.result.card for item in self.succeeded]


def _plural(count: int) -> str:
    return f"{count} card{'s' if count != 1 else ''}"


class BulkApprovalCoordinator:
    """Applies one decision across many cards through the shared state machine."""

    def __init__(self, machine: ApprovalStateMachine):
        self.machine = machine

    def selectable(self, cards: Iterable[ContentCard], actor: Actor) -> FrozenSet[str]:
        """Ids of cards that are pending approval with ``actor`` as an approver."""
        return frozenset(card.id for card in cards if self.machine.can_approve(card, actor))

    def approve(
        self,
        cards: Iterable[ContentCard],
        selected_ids: Collection[str],
        actor: Actor,
    ) -> BulkOutcome:
        details = f"Bulk approved — batch of {_plural(len(set(selected_ids)))}"
        return self._run(
            LifecycleAction.APPROVE,
            cards,
            selected_ids,
            actor,
            {"details": details},
        )

    def reject(
        self,
        cards: Iterable[ContentCard],
        selected_ids: Collection[str],
        actor: Actor,
        reason: Optional[str],
    ) -> BulkOutcome:
        """
        Reject every selected card with one shared reason.

        A blank reason is refused per card by the state machine's own guard,
        so nothing is applied.
        """
        cleaned = (reason or "").strip()
        payload = {"reason": reason}
        if cleaned:
            payload["details"] = f"Bulk rejected — {cleaned}"
        return self._run(LifecycleAction.REJECT, cards, selected_ids, actor, payload)

    def _run(
        self,
        action: LifecycleAction,
        cards: Iterable[ContentCard],
        selected_ids: Collection[str],
        actor: Actor,
        payload: dict,
    ) -> BulkOutcome:
        wanted = set(selected_ids)
        outcome = BulkOutcome(action=action)

        for card in cards:
            if card.id not in wanted:
                continue
            wanted.discard(card.id)
            result = self.machine.apply(card, action, actor, payload)
            outcome.items.append(
                BulkItemOutcome(card_id=card.id, result=result, refusal=result.refusal)
            )

        for missing in sorted(wanted):
            outcome.items.append(
                BulkItemOutcome(
                    card_id=missing,
                    refusal=GuardViolation(
                        GuardCode.CARD_NOT_FOUND,
                        f"Card {missing} is no longer available.",
                        action=action.value,
                    ),
                )
            )

        logger.info(
            f"Bulk {action.value}: {len(outcome.succeeded)} applied, {len(outcome.skipped)} skipped",
            extra={"action": action.value, "actor_id": actor.id, "count": len(outcome.items)},
        )
        return outcome
