"""User-displayable messages for scheduling errors."""

from __future__ import annotations

END_TIME_AFTER_START = "End time must be after start time."
INVALID_TIME_FORMAT = "Time must be in HH:MM format (24-hour). Minutes must be in 15-minute intervals (00, 15, 30, 45)."
INVALID_TIMEZONE = "Invalid time zone specified."

INVALID_RECURRENCE = "Invalid event recurrence setting."
INVALID_INTERVAL = "Recurrence interval must be a positive whole number."
ONE_TIME_NOT_SUPPORTED = "One-time recurrence is not supported for event series."
DATE_REQUIRED_ONE_TIME = "Date is required for one-time events."
DATE_FUTURE = "Date must be in the future."
RECURRING_START_END_DATE_REQUIRED = "Recurring events require start date and end date."
DAY_OF_WEEK_REQUIRED = "Day of week is required for weekly events."
DAY_OF_WEEK_INVALID = "Day of week must be between 0 (Sunday) and 6 (Saturday)."
DAY_OF_MONTH_REQUIRED = "Day of month is required for monthly events."
DAY_OF_MONTH_INVALID = "Day of month must be between 1 and 31."
START_DATE_FUTURE = "Start date must be in the future."
END_DATE_AFTER_START = "End date must be after start date."
DATE_TOO_FAR_IN_FUTURE_TEMPLATE = (
	"Event starting date is too far in the future. Please keep the event starting date within {days} days from now."
)
SERIES_DURATION_EXCEEDED_TEMPLATE = "Event series cannot last {months} months or longer."
PARAMETER_NOT_ALLOWED_TEMPLATE = "{parameter} is not allowed for {recurrence} events."

TIMESLOT_AT_LEAST_ONE_REQUIRED = "At least one timeslot is required."
TIMESLOT_INVALID_MAX_PARTICIPANTS = "Max participants must be greater than zero."
TIMESLOT_FEE_REQUIRED_FOR_FIXED = "Fee is required when charging a fixed amount."
TIMESLOT_DURATION_REQUIRED = "Duration is required for duration-type timeslots."
TIMESLOT_DURATION_NOT_MATCH_SCHEDULE = "Timeslot duration must be within the event's time range."
TIMESLOT_START_END_REQUIRED = "Start time and end time are required for start/end-type timeslots."
TIMESLOT_TIME_RANGE_NOT_MATCH_SCHEDULE = "Timeslot time range must be within the event's time range."
TIMESLOT_PERMANENT_PARTICIPANTS_EXCEEDED_MAX = (
	"The number of participants for this timeslot cannot exceed the timeslot maximum participants."
)
TIMESLOT_PERMANENT_PARTICIPANTS_NOT_UNIQUE = "Permanent participants must be unique."
TIMESLOT_PERMANENT_PARTICIPANT_NOT_CLUB_MEMBER = "Every permanent participant must be a club member."
TIMESLOT_MAX_PARTICIPANTS_EXCEEDED_TEMPLATE = (
	"Total max participants for all timeslots exceeds maximum {limit} participants per event."
)
TIMESLOT_DISCOUNTS_EXCEEDED_TEMPLATE = "A timeslot can have at most {limit} discounts."
TIMESLOT_DISCOUNT_VALUE_INVALID = "Discount value must be between 0 and 100 percent."

LEVEL_RANGE_INVALID = "Skill levels must be between 0 and 5."
LEVEL_RANGE_REVERSED = "Minimum skill level must be less than or equal to maximum skill level."
GRACE_TIME_HOURS_INVALID_TEMPLATE = "Grace time must be between {min_hours} and {max_hours} hours."
GRACE_TIME_PENALTY_NEGATIVE = "Grace time penalty amount cannot be negative."

VISIBILITY_CANNOT_BE_PUBLIC = "Event visibility cannot be public as this club is a private club."

CANNOT_JOIN_OR_LEAVE_DUE_TO_STATUS = "Unable to join or leave event as it has already started or been cancelled."
CANNOT_GENERATE_DUE_TO_INACTIVE_STATUS = "Unable to generate events due to inactive status."
SERIES_ALREADY_DEACTIVATED = "This event series has ended and cannot be activated again."
DATE_RANGE_INVALID_TEMPLATE = "Date range must not be reversed or exceed {days} days."

CLUB_NOT_FOUND = "This club does not exist."
SERIES_NOT_FOUND = "This event series does not exist."
INSTANCE_NOT_FOUND = "This event does not exist."
TIMESLOT_INVALID_ID = "Invalid timeslot ID provided."
PARTICIPANT_NOT_FOUND = "You are not participating in this event timeslot."
TIMESLOT_FULL = "This event timeslot is full and waitlist is also full."
EVENT_UNAUTHORIZED = "You are not authorized to manage this event."
ACCESS_DENIED = "You do not have access to perform this action."
BANNED_USER = "You are banned from this club and cannot join events."

JOB_REGISTRATION_FAILED = "Unable to schedule event jobs. Please try again."
IDEMPOTENCY_CONFLICT = "Idempotency key was reused with a different request."
