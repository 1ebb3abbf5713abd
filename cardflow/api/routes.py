"""API routes for the content card lifecycle."""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from cardflow.api.schemas import (
    ActionResponse,
    ActorRequest,
    ApproveRequest,
    BulkItemResponse,
    BulkRequest,
    BulkResponse,
    CardCreate,
    EditRequest,
    MediaAttach,
    ReasonRequest,
    RefusalResponse,
    SlaConfigPayload,
    SlaReadout,
    SlaSummary,
    SubmitRequest,
)
from cardflow.clock import Clock, system_clock
from cardflow.database import get_db
from cardflow.errors import (
    CardNotFoundError,
    ConfigValidationError,
    GuardCode,
    GuardViolation,
    PersistenceFailure,
)
from cardflow.models.domain import Actor, ApprovalEvent, AuditEntry, ContentCard, SlaThresholds
from cardflow.models.enums import AuditAction, ContentStatus, LifecycleAction
from cardflow.repository import SqlCardStore, SqlSlaConfigStore
from cardflow.services.actions import ActionOutcome, CardActionService
from cardflow.services.audit_ledger import entries_of
from cardflow.services.collaborators import NotificationSender
from cardflow.services.notifications import LoggingSender, NotificationDispatcher
from cardflow.services.sla_clock import (
    format_duration,
    sla_hours_elapsed,
    sla_remaining_hours,
    sla_start_time,
    sla_status,
    sla_summary,
)
from cardflow.services.sla_config import SlaConfigProvider
from cardflow.services.state_machine import ApprovalStateMachine

router = APIRouter()

REFUSAL_RESPONSES = {
    403: {"model": RefusalResponse, "description": "Refusal - actor is not an approver"},
    409: {"model": RefusalResponse, "description": "Refusal - card is not in a valid status"},
    422: {"model": RefusalResponse, "description": "Refusal - reason or approvers missing, or payload invalid"},
}

_GUARD_STATUS = {
    GuardCode.NOT_AN_APPROVER: status.HTTP_403_FORBIDDEN,
    GuardCode.INVALID_STATUS: status.HTTP_409_CONFLICT,
    GuardCode.CARD_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


# Dependencies - overridden in tests
def get_clock() -> Clock:
    return system_clock


def get_sender() -> NotificationSender:
    return LoggingSender()


def get_machine(
    clock: Clock = Depends(get_clock),
    sender: NotificationSender = Depends(get_sender),
) -> ApprovalStateMachine:
    return ApprovalStateMachine(
        clock=clock,
        dispatcher=NotificationDispatcher(sender=sender, clock=clock),
    )


def get_store(db: Session = Depends(get_db)) -> SqlCardStore:
    return SqlCardStore(db)


def get_service(
    store: SqlCardStore = Depends(get_store),
    machine: ApprovalStateMachine = Depends(get_machine),
) -> CardActionService:
    return CardActionService(store, machine)


def get_sla_provider(db: Session = Depends(get_db)) -> SlaConfigProvider:
    return SlaConfigProvider(SqlSlaConfigStore(db))


def _refusal(violation: GuardViolation) -> HTTPException:
    return HTTPException(
        status_code=_GUARD_STATUS.get(violation.guard, status.HTTP_422_UNPROCESSABLE_ENTITY),
        detail={"code": violation.code, "message": violation.message},
    )


def _perform(
    service: CardActionService,
    card_id: str,
    action: LifecycleAction,
    actor: Actor,
    payload: Optional[dict] = None,
) -> ActionResponse:
    try:
        outcome = service.perform(card_id, action, actor, payload)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="Content card not found")
    return _respond(outcome)


def _respond(outcome: ActionOutcome) -> ActionResponse:
    if outcome.refused:
        raise _refusal(outcome.result.refusal)
    return ActionResponse(
        card=outcome.card,
        saved=outcome.saved,
        warnings=[f"{w.code}: {w.message}" for w in outcome.warnings],
    )


def _load(store: SqlCardStore, card_id: str) -> ContentCard:
    try:
        return store.load_card(card_id)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="Content card not found")


# Card endpoints
@router.post("/cards", response_model=ContentCard, status_code=status.HTTP_201_CREATED)
def create_card(
    data: CardCreate,
    store: SqlCardStore = Depends(get_store),
    machine: ApprovalStateMachine = Depends(get_machine),
):
    """Create a new card in draft."""
    card = machine.create_card(
        project_id=data.project_id,
        platform=data.platform,
        title=data.title,
        actor=data.actor,
        caption=data.caption,
        hashtags=data.hashtags,
        approvers=data.approvers,
        scheduled_date=data.scheduled_date,
        scheduled_time=data.scheduled_time,
        details=data.details,
    )
    try:
        store.add_card(card)
    except PersistenceFailure as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return card


@router.get("/cards", response_model=List[ContentCard])
def list_cards(
    project_id: Optional[str] = None,
    card_status: Optional[ContentStatus] = None,
    store: SqlCardStore = Depends(get_store),
):
    """List cards, newest first."""
    return store.list_cards(project_id=project_id, status=card_status)


@router.get("/cards/{card_id}", response_model=ContentCard)
def get_card(card_id: str, store: SqlCardStore = Depends(get_store)):
    return _load(store, card_id)


@router.delete("/cards/{card_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_card(card_id: str, store: SqlCardStore = Depends(get_store)):
    """Delete a card and its audit log. The only way a ledger ever shrinks."""
    try:
        store.delete_card(card_id)
    except CardNotFoundError:
        raise HTTPException(status_code=404, detail="Content card not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/cards/{card_id}/audit", response_model=List[AuditEntry])
def get_audit_log(
    card_id: str,
    action: Optional[List[AuditAction]] = Query(None),
    store: SqlCardStore = Depends(get_store),
):
    """Audit log oldest first, optionally filtered by action."""
    card = _load(store, card_id)
    return list(entries_of(card, action or None))


# Lifecycle actions
@router.post("/cards/{card_id}/submit", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def submit_for_approval(card_id: str, data: SubmitRequest, service: CardActionService = Depends(get_service)):
    """
    Submit a draft or rejected card for approval.

    WILL REFUSE if no approvers are designated.
    """
    return _perform(
        service, card_id, LifecycleAction.SUBMIT_FOR_APPROVAL, data.actor, {"approvers": data.approvers}
    )


@router.post("/cards/{card_id}/approve", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def approve(card_id: str, data: ApproveRequest, service: CardActionService = Depends(get_service)):
    """
    Approve a pending card. Cards with a scheduled date move straight to scheduled.

    WILL REFUSE if:
    - Card is not pending approval (e.g. someone else already decided)
    - Actor is not a designated approver
    """
    return _perform(service, card_id, LifecycleAction.APPROVE, data.actor, {"details": data.details})


@router.post("/cards/{card_id}/reject", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def reject(card_id: str, data: ReasonRequest, service: CardActionService = Depends(get_service)):
    """Reject a pending card. A reason is required."""
    return _perform(service, card_id, LifecycleAction.REJECT, data.actor, {"reason": data.reason})


@router.post("/cards/{card_id}/revert", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def revert_to_draft(card_id: str, data: ReasonRequest, service: CardActionService = Depends(get_service)):
    """Send a pending or rejected card back to draft. A reason is required."""
    return _perform(service, card_id, LifecycleAction.REVERT_TO_DRAFT, data.actor, {"reason": data.reason})


@router.post("/cards/{card_id}/publish", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def mark_published(card_id: str, data: ActorRequest, service: CardActionService = Depends(get_service)):
    """Confirm a scheduled card has gone live."""
    return _perform(service, card_id, LifecycleAction.MARK_PUBLISHED, data.actor)


@router.post("/cards/{card_id}/edit", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def edit(card_id: str, data: EditRequest, service: CardActionService = Depends(get_service)):
    return _perform(service, card_id, LifecycleAction.EDIT, data.actor, {"changes": data.changes})


@router.post("/cards/{card_id}/media", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def attach_media(card_id: str, data: MediaAttach, service: CardActionService = Depends(get_service)):
    """Attach media to a card; called by uploads and the AI media generator."""
    payload = {"media_url": data.media_url, "media_type": data.media_type, "file_name": data.file_name}
    return _perform(service, card_id, LifecycleAction.ATTACH_MEDIA, data.actor, payload)


@router.post("/cards/{card_id}/media/remove", response_model=ActionResponse, responses=REFUSAL_RESPONSES)
def remove_media(card_id: str, data: ActorRequest, service: CardActionService = Depends(get_service)):
    return _perform(service, card_id, LifecycleAction.REMOVE_MEDIA, data.actor)


# Bulk endpoints
@router.get("/projects/{project_id}/selectable", response_model=List[str])
def selectable_cards(
    project_id: str,
    actor_id: str,
    store: SqlCardStore = Depends(get_store),
    service: CardActionService = Depends(get_service),
):
    """Ids of pending cards in a project that ``actor_id`` may decide on."""
    cards = store.list_cards(project_id=project_id, status=ContentStatus.PENDING_APPROVAL)
    actor = Actor(id=actor_id, name=actor_id)
    return sorted(service.bulk.selectable(cards, actor))


def _bulk(service: CardActionService, action: LifecycleAction, data: BulkRequest) -> BulkResponse:
    batch, outcomes = service.perform_bulk(data.card_ids, action, data.actor, data.reason)
    items = []
    for item in batch.items:
        saved = item.card_id in outcomes and outcomes[item.card_id].saved
        items.append(
            BulkItemResponse(
                card_id=item.card_id,
                applied=item.ok,
                saved=saved,
                code=item.refusal.code if item.refusal else None,
                message=item.refusal.message if item.refusal else None,
            )
        )
    return BulkResponse(
        action=action,
        applied=len(batch.succeeded),
        skipped=len(batch.skipped),
        items=items,
    )


@router.post("/bulk/approve", response_model=BulkResponse)
def bulk_approve(data: BulkRequest, service: CardActionService = Depends(get_service)):
    """
    Approve every selected card the actor may approve.

    Stale or unauthorized cards are skipped and reported, never failing the batch.
    """
    return _bulk(service, LifecycleAction.APPROVE, data)


@router.post("/bulk/reject", response_model=BulkResponse)
def bulk_reject(data: BulkRequest, service: CardActionService = Depends(get_service)):
    """Reject every selected card the actor may reject, with one shared reason."""
    return _bulk(service, LifecycleAction.REJECT, data)


# SLA endpoints
@router.get("/cards/{card_id}/sla", response_model=SlaReadout)
def card_sla(
    card_id: str,
    tenant_id: Optional[str] = None,
    store: SqlCardStore = Depends(get_store),
    provider: SlaConfigProvider = Depends(get_sla_provider),
    clock: Clock = Depends(get_clock),
):
    """Elapsed/remaining approval time for one card against its tenant's thresholds."""
    card = _load(store, card_id)
    thresholds = provider.load(tenant_id)
    elapsed = sla_hours_elapsed(card, clock)
    remaining = sla_remaining_hours(card, thresholds, clock)
    return SlaReadout(
        card_id=card.id,
        status=sla_status(card, thresholds, clock),
        started_at=sla_start_time(card),
        hours_elapsed=elapsed,
        hours_remaining=remaining,
        elapsed_label=format_duration(elapsed) if elapsed is not None else None,
        remaining_label=format_duration(remaining),
    )


@router.get("/projects/{project_id}/sla-summary", response_model=SlaSummary)
def project_sla_summary(
    project_id: str,
    tenant_id: Optional[str] = None,
    store: SqlCardStore = Depends(get_store),
    provider: SlaConfigProvider = Depends(get_sla_provider),
    clock: Clock = Depends(get_clock),
):
    """Pending cards per SLA status for a project."""
    cards = store.list_cards(project_id=project_id, status=ContentStatus.PENDING_APPROVAL)
    counts = sla_summary(cards, provider.load(tenant_id), clock)
    return SlaSummary(project_id=project_id, counts=counts)


@router.get("/sla/config", response_model=SlaThresholds)
def get_sla_config(tenant_id: Optional[str] = None, provider: SlaConfigProvider = Depends(get_sla_provider)):
    """Thresholds for a tenant; platform defaults when none are saved."""
    return provider.load(tenant_id)


@router.put("/sla/config", response_model=SlaThresholds)
def put_sla_config(data: SlaConfigPayload, provider: SlaConfigProvider = Depends(get_sla_provider)):
    thresholds = SlaThresholds(warning_hours=data.warning_hours, breach_hours=data.breach_hours)
    try:
        saved = provider.save(thresholds, data.tenant_id)
    except ConfigValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": e.code, "message": e.reason},
        )
    if not saved:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="SLA config save failed")
    return thresholds


# Approval event feed
@router.get("/approval-events", response_model=List[ApprovalEvent])
def list_approval_events(limit: int = 50, store: SqlCardStore = Depends(get_store)):
    """Most recent decisions, newest first."""
    return store.recent_approval_events(limit=limit)
