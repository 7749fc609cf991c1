import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional, Set, Tuple

from .calendar_logic import (
    generate_occurrences, window_start_instant, window_end_instant, WindowBound,
)
from .config import load_config
from .models import (
    DEFAULT_DURATION, RESCHEDULED,
    Appointment, Client, ExceptionEntry, Occurrence, RealOccurrence,
    RecurrenceRule, Slot, VirtualOccurrence,
)


class MaterializeError(Exception):
    """Base class for failures while turning a virtual occurrence into an appointment."""


class ExceptionWriteError(MaterializeError):
    """The ledger entry could not be written. Nothing was persisted."""

    def __init__(self, client_id, entry: ExceptionEntry):
        self.client_id = client_id
        self.entry = entry
        super().__init__(f"Could not record exception for client {client_id} on {entry.date}")


class AppointmentCreateError(MaterializeError):
    """
    The ledger entry is stored but the appointment is not. Retry with
    retry_appointment_create(); the entry must not be written again.
    """

    def __init__(self, appointment: Appointment, entry: ExceptionEntry):
        self.appointment = appointment
        self.entry = entry
        super().__init__(
            f"Exception recorded for client {appointment.client_id} on {entry.date} "
            f"but appointment at {appointment.date} {appointment.time} was not created"
        )


def _default_duration(cfg: Optional[dict] = None) -> int:
    cfg = cfg if cfg is not None else load_config()
    return cfg.get('default_duration') or DEFAULT_DURATION


def real_slots(appointments: Iterable[Appointment], client_id) -> Set[Slot]:
    return {a.slot for a in appointments if a.client_id == client_id}


def sort_events(events: Iterable[Occurrence]) -> List[Occurrence]:
    """Display order: by start, real before virtual on ties."""
    return sorted(events, key=lambda e: (e.start, isinstance(e, VirtualOccurrence)))


def list_events(
    clients: Iterable[Client],
    appointments: Iterable[Appointment],
    window_start: WindowBound,
    window_end: WindowBound,
    default_duration: int = DEFAULT_DURATION,
) -> List[Occurrence]:
    """
    Merge persisted appointments and rule-generated occurrences for a window.

    Real appointments inside the window come first, sorted by date and time,
    followed by each client's virtual occurrences. Datetime bounds are
    compared against the appointment's start; plain dates cover whole days.
    A slot held by a real appointment is never repeated as a virtual one.
    """
    appointments = list(appointments)
    first, last = window_start_instant(window_start), window_end_instant(window_end)
    in_window = [a for a in appointments if first <= datetime.combine(a.date, a.time) <= last]
    events: List[Occurrence] = [
        RealOccurrence(a) for a in sorted(in_window, key=lambda a: (a.date, a.time))
    ]
    for client in clients:
        rule = client.recurrence
        if rule is None or not rule.active:
            continue
        events.extend(generate_occurrences(
            rule, rule.exceptions, window_start, window_end,
            real_slots(appointments, client.id), client_id=client.id,
            default_duration=default_duration,
        ))
    return events


def resolve_value(override: Optional[float], rule: Optional[RecurrenceRule]) -> float:
    """Value for a materialized appointment. Never zero or negative."""
    if override is not None and override > 0:
        return override
    if rule is not None and rule.value and rule.value > 0:
        return rule.value
    return 1


def materialize(
    occurrence: VirtualOccurrence,
    target_date: date,
    target_time: time,
    clients,
    appointments,
    value: Optional[float] = None,
    duration: Optional[int] = None,
    status: str = "scheduled",
    payment_status: str = "pending",
    notes: str = "",
) -> Tuple[Appointment, ExceptionEntry]:
    """
    Commit a virtual occurrence as a real appointment at (target_date, target_time).

    The original slot is recorded as rescheduled in the client's ledger
    before the appointment is created, so a concurrent sync pass that
    re-reads the ledger skips the original date. Callers should reload both
    clients and appointments afterwards.

    `clients` needs get_client() and add_recurrence_exception();
    `appointments` needs create_appointment().
    """
    client = clients.get_client(occurrence.client_id)
    rule = client.recurrence if client is not None else None

    entry = ExceptionEntry(
        date=occurrence.date,
        type=RESCHEDULED,
        new_date=target_date,
        new_time=target_time,
    )
    appt = Appointment(
        client_id=occurrence.client_id,
        date=target_date,
        time=target_time,
        duration=duration or occurrence.duration or _default_duration(),
        value=resolve_value(value, rule),
        status=status,
        payment_status=payment_status,
        notes=notes,
        user_id=client.user_id if client is not None else None,
    )

    try:
        clients.add_recurrence_exception(occurrence.client_id, entry)
    except Exception as e:
        logging.error(f"Failed to record exception for client {occurrence.client_id}: {e}")
        raise ExceptionWriteError(occurrence.client_id, entry) from e

    try:
        appointments.create_appointment(appt)
    except Exception as e:
        logging.error(f"Exception recorded but appointment creation failed for client {occurrence.client_id}: {e}")
        raise AppointmentCreateError(appt, entry) from e
    return appt, entry


def retry_appointment_create(error: AppointmentCreateError, appointments) -> Appointment:
    """Re-issue only the appointment create of a half-finished materialize."""
    appointments.create_appointment(error.appointment)
    return error.appointment


def sync_due_occurrences(
    clients: Iterable[Client],
    appointments,
    now: Optional[datetime] = None,
    trailing_days: Optional[int] = None,
    leading_days: Optional[int] = None,
    note: Optional[str] = None,
    default_duration: Optional[int] = None,
) -> List[Appointment]:
    """
    Create real appointments for every occurrence due in
    [now - trailing_days, now + leading_days].

    Best effort: a failing create is logged and skipped and will be picked up
    again on the next pass, since no exception is recorded for it. Running
    twice in a row creates nothing the second time.
    """
    if None in (trailing_days, leading_days, note, default_duration):
        cfg = load_config()
        if trailing_days is None:
            trailing_days = cfg['sync']['trailing_days']
        if leading_days is None:
            leading_days = cfg['sync']['leading_days']
        if note is None:
            note = cfg['auto_note']
        if default_duration is None:
            default_duration = _default_duration(cfg)

    now = now or datetime.now()
    start = now - timedelta(days=trailing_days)
    end = now + timedelta(days=leading_days)

    created: List[Appointment] = []
    for client in clients:
        rule = client.recurrence
        if rule is None or not rule.active:
            continue
        try:
            existing = appointments.list_by_client_in_range(client.id, start.date(), end.date())
        except Exception as e:
            logging.error(f"Recurrence sync: could not load appointments for client {client.id}: {e}")
            continue

        due = generate_occurrences(
            rule, rule.exceptions, start, end,
            real_slots(existing, client.id), client_id=client.id,
            default_duration=default_duration,
        )
        for occ in due:
            appt = Appointment(
                client_id=client.id,
                date=occ.date,
                time=occ.time,
                duration=occ.duration,
                value=resolve_value(None, rule),
                status="scheduled",
                payment_status="pending",
                notes=note,
                user_id=client.user_id,
            )
            try:
                appointments.create_appointment(appt)
            except Exception as e:
                logging.error(f"Recurrence sync: failed to create appointment for client {client.id} on {occ.date}: {e}")
                continue
            created.append(appt)

    if created:
        logging.info(f"Recurrence sync created {len(created)} appointment(s)")
    return created


def sync_for_user(db, user_id: str, now: Optional[datetime] = None) -> List[Appointment]:
    """Session bootstrap: sync all active recurrences of one user."""
    try:
        clients = db.list_active_with_recurrence(user_id)
    except Exception as e:
        logging.error(f"Recurrence sync: could not load clients for user {user_id}: {e}")
        return []
    return sync_due_occurrences(clients, db, now=now)
