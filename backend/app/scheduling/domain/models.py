"""Domain models for recurring event series and their instances."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Recurrence(str, Enum):
	ONE_TIME = "one_time"
	DAILY = "daily"
	WEEKLY = "weekly"
	MONTHLY = "monthly"


class Visibility(str, Enum):
	PUBLIC = "public"
	MEMBERS_ONLY = "members_only"


class CapacityModel(str, Enum):
	DURATION = "duration"
	START_END = "start_end"


class FeeType(str, Enum):
	FIXED = "fixed"
	SPLIT = "split"


class EventType(str, Enum):
	SOCIAL = "social"
	TRAINING = "training"


class PaymentType(str, Enum):
	CASH = "cash"


class PenaltyType(str, Enum):
	FIXED = "fixed"
	DEFAULT_FEE = "default_fee"


class DiscountType(str, Enum):
	USER = "user"
	GENDER = "gender"
	SKILL_LEVEL = "skill_level"
	CLUB_MEMBER = "club_member"


class InstanceStatus(str, Enum):
	NOT_STARTED = "not_started"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	CANCELLED = "cancelled"


class SeriesState(str, Enum):
	INACTIVE = "inactive"
	ACTIVE = "active"
	DEACTIVATED = "deactivated"


class JobStatus(str, Enum):
	PENDING = "pending"
	EXECUTED = "executed"
	CANCELED = "canceled"


class Location(BaseModel):
	"""Where a series takes place and which timezone its wall-clock times use."""

	name: str
	address: Optional[str] = None
	place_id: Optional[str] = None
	timezone: str

	model_config = ConfigDict(from_attributes=True)


class RecurrenceSchedule(BaseModel):
	"""Wall-clock window plus the date fields required by the recurrence kind.

	``day_of_week`` uses 0 = Sunday through 6 = Saturday.
	"""

	start_time: str
	end_time: str
	start_date: Optional[datetime] = None
	end_date: Optional[datetime] = None
	day_of_week: Optional[list[int]] = None
	day_of_month: Optional[int] = None
	date: Optional[datetime] = None
	interval: int = 1

	model_config = ConfigDict(from_attributes=True)


class LevelRange(BaseModel):
	"""Skill levels the event is aimed at, inclusive on both ends (0 to 5)."""

	min: float = 0
	max: float = 5

	model_config = ConfigDict(from_attributes=True)


class GraceTime(BaseModel):
	"""How long before the start a participant may still leave without a penalty."""

	hours: int
	penalty_type: PenaltyType
	penalty_amount: float = 0

	model_config = ConfigDict(from_attributes=True)


class Discount(BaseModel):
	type: DiscountType
	value: float
	description: Optional[str] = None

	model_config = ConfigDict(from_attributes=True)


class TimeslotTemplate(BaseModel):
	"""Bookable capacity unit defined on a series."""

	name: Optional[str] = None
	capacity_model: CapacityModel
	duration: Optional[int] = None
	start_time: Optional[str] = None
	end_time: Optional[str] = None
	fee_type: FeeType
	fee: Optional[float] = None
	discounts: list[Discount] = Field(default_factory=list)
	max_participants: int
	max_waitlist: int = 0
	permanent_participants: list[UUID] = Field(default_factory=list)

	model_config = ConfigDict(from_attributes=True)


class Timeslot(TimeslotTemplate):
	"""Snapshot of a template on a materialized instance, with live counters."""

	id: str
	num_participants: int = 0
	num_waitlisted: int = 0


class EventSeries(BaseModel):
	"""Recurrence template from which dated instances are generated."""

	id: UUID
	club_id: UUID
	name: str
	description: Optional[str] = None
	location: Location
	recurrence: Recurrence
	schedule: RecurrenceSchedule
	timeslots: list[TimeslotTemplate]
	visibility: Visibility
	type: EventType = EventType.SOCIAL
	level_range: LevelRange = Field(default_factory=LevelRange)
	payment_type: PaymentType = PaymentType.CASH
	grace_time: Optional[GraceTime] = None
	state: SeriesState = SeriesState.INACTIVE
	on_series_end_function_id: Optional[UUID] = None
	on_next_batch_function_id: Optional[UUID] = None
	created_by: UUID
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def timezone(self) -> str:
		return self.location.timezone


class EventInstance(BaseModel):
	"""One concrete occurrence of a series on a specific local date."""

	id: UUID
	series_id: Optional[UUID] = None
	club_id: UUID
	name: str
	description: Optional[str] = None
	location: Location
	visibility: Visibility
	type: EventType = EventType.SOCIAL
	level_range: LevelRange = Field(default_factory=LevelRange)
	payment_type: PaymentType = PaymentType.CASH
	grace_time: Optional[GraceTime] = None
	date: datetime
	start_time: str
	end_time: str
	timeslots: list[Timeslot]
	status: InstanceStatus = InstanceStatus.NOT_STARTED
	on_event_start_function_id: Optional[UUID] = None
	on_event_end_function_id: Optional[UUID] = None
	created_by: UUID
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def timezone(self) -> str:
		return self.location.timezone

	def find_timeslot(self, timeslot_id: str) -> Optional[Timeslot]:
		for slot in self.timeslots:
			if slot.id == timeslot_id:
				return slot
		return None


class EventParticipant(BaseModel):
	"""A user's place (or waitlist spot) in an instance timeslot."""

	id: UUID
	instance_id: UUID
	timeslot_id: str
	user_id: UUID
	joined_at: datetime
	is_waitlisted: bool = False
	date: datetime

	model_config = ConfigDict(from_attributes=True)


class ScheduledJob(BaseModel):
	"""A time-triggered job registered with the job scheduler."""

	id: UUID
	run_at: datetime
	handler: str
	payload: dict[str, Any] = Field(default_factory=dict)
	status: JobStatus = JobStatus.PENDING
	attempts: int = 0
	last_error: Optional[str] = None
	created_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class ScheduleStatuses(BaseModel):
	"""Status of the two transition jobs attached to an instance."""

	on_event_start: Optional[JobStatus] = None
	on_event_end: Optional[JobStatus] = None
