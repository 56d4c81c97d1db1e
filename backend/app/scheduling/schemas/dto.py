"""Pydantic schemas for the scheduling API."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

_RECURRENCE_PATTERN = "^(one_time|daily|weekly|monthly)$"
_VISIBILITY_PATTERN = "^(public|members_only)$"
_EVENT_TYPE_PATTERN = "^(social|training)$"
_PAYMENT_TYPE_PATTERN = "^(cash)$"


class LocationPayload(BaseModel):
	name: str = Field(..., min_length=1, max_length=100)
	address: Optional[str] = Field(default=None, max_length=300)
	place_id: Optional[str] = Field(default=None, max_length=300)
	timezone: str = Field(..., min_length=1, max_length=64)


class SchedulePayload(BaseModel):
	start_time: str
	end_time: str
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None
	day_of_week: Optional[List[int]] = None
	day_of_month: Optional[int] = None
	date: Optional[datetime] = None
	interval: int = Field(default=1, ge=1)


class SchedulePatch(BaseModel):
	start_time: Optional[str] = None
	end_time: Optional[str] = None
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None
	day_of_week: Optional[List[int]] = None
	day_of_month: Optional[int] = None
	date: Optional[datetime] = None
	interval: Optional[int] = Field(default=None, ge=1)


class LevelRangePayload(BaseModel):
	min: float = Field(default=0, ge=0, le=5)
	max: float = Field(default=5, ge=0, le=5)


class GraceTimePayload(BaseModel):
	hours: int = Field(..., ge=1, le=168)
	penalty_type: str = Field(..., pattern="^(fixed|default_fee)$")
	penalty_amount: float = Field(default=0, ge=0)


class DiscountPayload(BaseModel):
	type: str = Field(..., pattern="^(user|gender|skill_level|club_member)$")
	value: float = Field(..., ge=0, le=100)
	description: Optional[str] = Field(default=None, max_length=300)


class TimeslotPayload(BaseModel):
	name: Optional[str] = Field(default=None, max_length=100)
	capacity_model: str = Field(..., pattern="^(duration|start_end)$")
	duration: Optional[int] = Field(default=None, ge=1)
	start_time: Optional[str] = None
	end_time: Optional[str] = None
	fee_type: str = Field(..., pattern="^(fixed|split)$")
	fee: Optional[float] = Field(default=None, ge=0)
	discounts: List[DiscountPayload] = Field(default_factory=list)
	max_participants: int
	max_waitlist: int = Field(default=0, ge=0)
	permanent_participants: List[UUID] = Field(default_factory=list)


class SeriesCreateRequest(BaseModel):
	name: str = Field(..., min_length=1, max_length=100)
	description: Optional[str] = Field(default=None, max_length=300)
	location: LocationPayload
	recurrence: str = Field(..., pattern=_RECURRENCE_PATTERN)
	schedule: SchedulePayload
	timeslots: List[TimeslotPayload]
	visibility: str = Field(..., pattern=_VISIBILITY_PATTERN)
	type: str = Field(default="social", pattern=_EVENT_TYPE_PATTERN)
	level_range: LevelRangePayload = Field(default_factory=LevelRangePayload)
	payment_type: str = Field(default="cash", pattern=_PAYMENT_TYPE_PATTERN)
	grace_time: Optional[GraceTimePayload] = None


class SeriesUpdateRequest(BaseModel):
	name: Optional[str] = Field(default=None, min_length=1, max_length=100)
	description: Optional[str] = Field(default=None, max_length=300)
	location: Optional[LocationPayload] = None
	schedule: Optional[SchedulePatch] = None
	timeslots: Optional[List[TimeslotPayload]] = None
	visibility: Optional[str] = Field(default=None, pattern=_VISIBILITY_PATTERN)
	type: Optional[str] = Field(default=None, pattern=_EVENT_TYPE_PATTERN)
	level_range: Optional[LevelRangePayload] = None
	payment_type: Optional[str] = Field(default=None, pattern=_PAYMENT_TYPE_PATTERN)
	grace_time: Optional[GraceTimePayload] = None


class GenerateRequest(BaseModel):
	range_start: datetime
	range_end: datetime


class SeriesResponse(BaseModel):
	id: UUID
	club_id: UUID
	name: str
	description: Optional[str] = None
	location: LocationPayload
	recurrence: str
	schedule: SchedulePayload
	timeslots: List[TimeslotPayload]
	visibility: str
	type: str = "social"
	level_range: LevelRangePayload = Field(default_factory=LevelRangePayload)
	payment_type: str = "cash"
	grace_time: Optional[GraceTimePayload] = None
	state: str
	created_by: UUID
	created_at: datetime
	updated_at: datetime


class SeriesListResponse(BaseModel):
	items: List[SeriesResponse]


class GenerationResponse(BaseModel):
	series_id: UUID
	dates: List[datetime]
	generated: int
	skipped: int


class ActivationResponse(GenerationResponse):
	state: str


class DeactivationStatusResponse(BaseModel):
	series_id: UUID
	state: str
	job_id: Optional[UUID] = None
	job_status: Optional[str] = None


class TimeslotResponse(TimeslotPayload):
	id: str
	num_participants: int
	num_waitlisted: int


class InstanceResponse(BaseModel):
	id: UUID
	series_id: Optional[UUID] = None
	club_id: UUID
	name: str
	description: Optional[str] = None
	location: LocationPayload
	visibility: str
	type: str = "social"
	level_range: LevelRangePayload = Field(default_factory=LevelRangePayload)
	payment_type: str = "cash"
	grace_time: Optional[GraceTimePayload] = None
	date: datetime
	start_time: str
	end_time: str
	timeslots: List[TimeslotResponse]
	status: str
	created_by: UUID
	created_at: datetime
	updated_at: datetime


class InstanceListResponse(BaseModel):
	items: List[InstanceResponse]
	next_cursor: Optional[str] = None


class ScheduleStatusesResponse(BaseModel):
	instance_id: UUID
	on_event_start: Optional[str] = None
	on_event_end: Optional[str] = None


class JoinResponse(BaseModel):
	instance_id: UUID
	timeslot_id: str
	user_id: UUID
	is_waitlisted: bool
	joined_at: datetime
	timeslot: TimeslotResponse


class LeaveResponse(BaseModel):
	instance_id: UUID
	timeslot_id: str
	user_id: UUID
	promoted_user_id: Optional[UUID] = None
	timeslot: TimeslotResponse
