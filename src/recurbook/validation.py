from datetime import time
from typing import List, Optional

from .models import (
    FREQUENCIES, EXCEPTION_TYPES, RESCHEDULED,
    APPOINTMENT_STATUSES, PAYMENT_STATUSES,
    RecurrenceRule, Appointment, ExceptionEntry,
)

MAX_DURATION = 480      # 8 hours
MAX_VALUE = 999999
MAX_NOTES = 500


class ValidationError(ValueError):
    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Validation error: " + ", ".join(problems))


def _has_seconds(t: Optional[time]) -> bool:
    # times are stored as HH:MM
    return t is not None and (t.second != 0 or t.microsecond != 0)


def _exception_problems(ex: ExceptionEntry) -> List[str]:
    if ex.type not in EXCEPTION_TYPES:
        return [f"exceptions[{ex.date}]: unknown type {ex.type!r}"]
    if ex.type != RESCHEDULED and (ex.new_date or ex.new_time):
        return [f"exceptions[{ex.date}]: only rescheduled entries carry a new date/time"]
    if _has_seconds(ex.new_time):
        return [f"exceptions[{ex.date}]: new_time must be a whole minute (HH:MM)"]
    return []


def validate_exception(entry: ExceptionEntry) -> ExceptionEntry:
    problems = _exception_problems(entry)
    if problems:
        raise ValidationError(problems)
    return entry


def validate_recurrence(rule: RecurrenceRule) -> RecurrenceRule:
    """
    Check a rule before it is stored. A missing anchor is allowed, such a
    rule simply generates nothing until it is completed.
    """
    problems = []
    if rule.frequency not in FREQUENCIES:
        problems.append(f"frequency: unknown value {rule.frequency!r}")
    if rule.duration is not None and not (0 < rule.duration <= MAX_DURATION):
        problems.append(f"duration: must be between 1 and {MAX_DURATION} minutes")
    if rule.value is not None and rule.value < 0:
        problems.append("value: must not be negative")
    if _has_seconds(rule.anchor_time):
        problems.append("anchor_time: must be a whole minute (HH:MM)")
    for ex in rule.exceptions:
        problems.extend(_exception_problems(ex))
    if problems:
        raise ValidationError(problems)
    return rule


def validate_appointment(appt: Appointment) -> Appointment:
    problems = []
    if appt.client_id is None:
        problems.append("client_id: required")
    if appt.time is None or _has_seconds(appt.time):
        problems.append("time: must be a whole minute (HH:MM)")
    if not (0 < appt.value <= MAX_VALUE):
        problems.append(f"value: must be positive and at most {MAX_VALUE}")
    if not (0 < appt.duration <= MAX_DURATION):
        problems.append(f"duration: must be between 1 and {MAX_DURATION} minutes")
    if appt.status not in APPOINTMENT_STATUSES:
        problems.append(f"status: unknown value {appt.status!r}")
    if appt.payment_status not in PAYMENT_STATUSES:
        problems.append(f"payment_status: unknown value {appt.payment_status!r}")
    if appt.notes and len(appt.notes) > MAX_NOTES:
        problems.append("notes: too long")
    if problems:
        raise ValidationError(problems)
    return appt
