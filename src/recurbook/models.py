# src/recurbook/models.py
from dataclasses import dataclass, field
from datetime import date, time, datetime
from typing import List, Optional, Tuple, Union

WEEKLY = "weekly"
BIWEEKLY = "biweekly"
MONTHLY = "monthly"
FREQUENCIES = (WEEKLY, BIWEEKLY, MONTHLY)

CANCELLED = "cancelled"
RESCHEDULED = "rescheduled"
EXCEPTION_TYPES = (CANCELLED, RESCHEDULED)

APPOINTMENT_STATUSES = ("scheduled", "done", "canceled", "noShow")
PAYMENT_STATUSES = ("paid", "pending", "late", "canceled")

DEFAULT_DURATION = 60

Slot = Tuple[date, time]


@dataclass
class ExceptionEntry:
    """Override for one generated date (the original slot, not the new one)."""
    date: date
    type: str = CANCELLED
    new_date: Optional[date] = None
    new_time: Optional[time] = None


@dataclass
class RecurrenceRule:
    """A repeating schedule anchored at occurrence 0 (anchor_date + anchor_time)."""
    frequency: str = WEEKLY
    anchor_date: Optional[date] = None
    anchor_time: Optional[time] = None
    duration: Optional[int] = DEFAULT_DURATION   # minutes; None uses the configured default
    value: float = 0.0                 # default price for generated appointments
    active: bool = True
    exceptions: List[ExceptionEntry] = field(default_factory=list)


@dataclass
class Client:
    id: Optional[int] = field(default=None, init=False)    # db primary key
    user_id: str
    name: str
    phone: str = ""
    email: str = ""
    notes: str = ""
    recurrence: Optional[RecurrenceRule] = None


@dataclass
class Appointment:
    id: Optional[int] = field(default=None, init=False)    # db primary key
    client_id: int
    date: date
    time: time
    duration: int = DEFAULT_DURATION
    value: float = 0.0
    status: str = "scheduled"
    payment_status: str = "pending"
    notes: str = ""
    user_id: Optional[str] = None

    @property
    def slot(self) -> Slot:
        return (self.date, self.time)


@dataclass(frozen=True)
class VirtualOccurrence:
    """Projection of a rule into one slot. Never persisted, has no id."""
    client_id: Optional[int]
    date: date
    time: time
    duration: int = DEFAULT_DURATION
    value: float = 0.0

    @property
    def slot(self) -> Slot:
        return (self.date, self.time)

    @property
    def start(self) -> datetime:
        return datetime.combine(self.date, self.time)


@dataclass(frozen=True)
class RealOccurrence:
    """A persisted appointment surfaced in an event list."""
    appointment: Appointment

    @property
    def client_id(self) -> int:
        return self.appointment.client_id

    @property
    def date(self) -> date:
        return self.appointment.date

    @property
    def time(self) -> time:
        return self.appointment.time

    @property
    def duration(self) -> int:
        return self.appointment.duration

    @property
    def value(self) -> float:
        return self.appointment.value

    @property
    def slot(self) -> Slot:
        return self.appointment.slot

    @property
    def start(self) -> datetime:
        return datetime.combine(self.appointment.date, self.appointment.time)


Occurrence = Union[VirtualOccurrence, RealOccurrence]
