"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict, computed_field, field_validator
from typing import Literal, Optional
from datetime import datetime
from uuid import UUID

from .services.timer_rules import as_utc, round_minutes

_PRIORITY_PATTERN = "^(low|medium|high|critical)$"
_TYPE_PATTERN = "^(corrective|preventive|inspection)$"
_BREAK_REASON_PATTERN = "^(lunch|parts_wait|meeting|personal|other)$"


# User schemas
class UserResponse(BaseModel):
    id: UUID
    company_id: Optional[UUID] = None
    username: str
    name: str
    initials: str
    role: str
    email: Optional[str] = None
    is_active: bool
    model_config = ConfigDict(from_attributes=True)


# Auth schemas
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


# Work order schemas
class WorkOrderCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    equipment_id: Optional[str] = Field(default=None, max_length=64)
    priority: str = Field(default="medium", pattern=_PRIORITY_PATTERN)
    type: str = Field(default="corrective", pattern=_TYPE_PATTERN)
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    # Managers may ask for a draft; techs always get one.
    status: Optional[str] = Field(default=None, pattern="^(draft|open)$")


class WorkOrderUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    equipment_id: Optional[str] = Field(default=None, max_length=64)
    priority: Optional[str] = Field(default=None, pattern=_PRIORITY_PATTERN)
    type: Optional[str] = Field(default=None, pattern=_TYPE_PATTERN)
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    # Completion is the only status change allowed through PATCH.
    status: Optional[Literal["completed"]] = None


class WorkOrderRejectRequest(BaseModel):
    reason: Optional[str] = None


class WorkOrderResponse(BaseModel):
    id: UUID
    company_id: UUID
    work_order_number: int
    title: str
    description: Optional[str] = None
    equipment_id: Optional[str] = None
    priority: str
    type: str
    status: str
    assigned_to_id: Optional[UUID] = None
    created_by_id: UUID
    submitted_by_id: Optional[UUID] = None
    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_time_minutes: float = 0.0
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("approved_at", "due_date", "completed_at", "created_at", "updated_at")
    @classmethod
    def timestamps_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None

    @computed_field
    @property
    def total_time_rounded_minutes(self) -> int:
        """Whole minutes for display; total_time_minutes stays unrounded."""
        return round_minutes(self.total_time_minutes)


# Timer schemas
class TimerRequest(BaseModel):
    work_order_id: UUID = Field(alias="workOrderId")
    model_config = ConfigDict(populate_by_name=True)


class TimerPauseRequest(TimerRequest):
    break_reason: str = Field(alias="breakReason", pattern=_BREAK_REASON_PATTERN)
    notes: Optional[str] = None


class TimeEntryResponse(BaseModel):
    id: UUID
    user_id: UUID
    work_order_id: UUID
    entry_type: str
    break_reason: Optional[str] = None
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("start_time", "end_time")
    @classmethod
    def timestamps_as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """SQLite hands back naive datetimes; they are stored as UTC."""
        return as_utc(value) if value is not None else None


class TimeEntryNotesUpdate(BaseModel):
    notes: Optional[str] = None


class TimerChangeResponse(BaseModel):
    closed: Optional[TimeEntryResponse] = None
    opened: Optional[TimeEntryResponse] = None
    work_order: WorkOrderResponse


class TimerSwitchResponse(BaseModel):
    outcome: Literal["started", "switched"]
    closed: Optional[TimeEntryResponse] = None
    opened: TimeEntryResponse


class ActiveTimerResponse(BaseModel):
    entry: TimeEntryResponse
    work_order: WorkOrderResponse
    elapsed_seconds: float


class HealthCheckResponse(BaseModel):
    status: str
    version: str
    database: str
    timer_poll_interval_seconds: int
