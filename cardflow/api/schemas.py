"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from cardflow.models.domain import SCHEDULE_TIME_PATTERN, Actor, CardEdit, ContentCard
from cardflow.models.enums import LifecycleAction, MediaType, Platform, SlaStatus


# Card schemas
class CardCreate(BaseModel):
    project_id: str = Field(..., min_length=1)
    platform: Platform
    title: str = Field(..., min_length=1, max_length=200)
    caption: str = ""
    hashtags: List[str] = []
    approvers: List[str] = []
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = Field(None, pattern=SCHEDULE_TIME_PATTERN)
    details: Optional[str] = None
    actor: Actor


# Action schemas - the actor comes from the host's auth layer
class ActorRequest(BaseModel):
    actor: Actor


class SubmitRequest(ActorRequest):
    approvers: Optional[List[str]] = None


class ApproveRequest(ActorRequest):
    details: Optional[str] = None


class ReasonRequest(ActorRequest):
    reason: str = ""


class EditRequest(ActorRequest):
    changes: CardEdit


class MediaAttach(ActorRequest):
    media_url: str = Field(..., min_length=1)
    media_type: MediaType
    file_name: str = Field(..., min_length=1)


class ActionResponse(BaseModel):
    card: ContentCard
    saved: bool
    warnings: List[str] = []


class BulkRequest(ActorRequest):
    card_ids: List[str] = Field(..., min_length=1)
    reason: Optional[str] = None


class BulkItemResponse(BaseModel):
    card_id: str
    applied: bool
    saved: bool = False
    code: Optional[str] = None
    message: Optional[str] = None


class BulkResponse(BaseModel):
    action: LifecycleAction
    applied: int
    skipped: int
    items: List[BulkItemResponse]


# SLA schemas
class SlaReadout(BaseModel):
    card_id: str
    status: Optional[SlaStatus]
    started_at: datetime
    hours_elapsed: Optional[float]
    hours_remaining: float
    elapsed_label: Optional[str]
    remaining_label: str


class SlaConfigPayload(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    warning_hours: int
    breach_hours: int


class SlaSummary(BaseModel):
    project_id: str
    counts: Dict[SlaStatus, int]


# Error response
class RefusalResponse(BaseModel):
    """Response when an action is refused."""
    code: str
    message: str
