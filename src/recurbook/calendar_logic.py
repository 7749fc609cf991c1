import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, Iterable, List, Optional, Set, Union

from dateutil.relativedelta import relativedelta

from .models import (
    WEEKLY, BIWEEKLY, MONTHLY, DEFAULT_DURATION,
    RecurrenceRule, ExceptionEntry, VirtualOccurrence, Slot,
)

# Upper bound for both the advance loop and the emit loop.
MAX_STEPS = 500

WindowBound = Union[date, datetime]


def anchor_instant(rule: RecurrenceRule) -> Optional[datetime]:
    """Occurrence 0 of the rule, or None if the anchor is incomplete."""
    if rule.anchor_date is None or rule.anchor_time is None:
        return None
    return datetime.combine(rule.anchor_date, rule.anchor_time)


def _add_month(instant: datetime) -> datetime:
    # Day of month is counted from the 1st of the next month, so it overflows
    # into the month after when the next month is shorter (Jan 31 -> Mar 2/3).
    first_of_next = instant.replace(day=1) + relativedelta(months=1)
    return first_of_next + timedelta(days=instant.day - 1)


# Frequencies with a fixed period can be jumped over in one go.
FIXED_PERIODS = {
    WEEKLY: timedelta(days=7),
    BIWEEKLY: timedelta(days=14),
}


def step(instant: datetime, frequency: str) -> Optional[datetime]:
    """Advance one frequency step. Unknown frequencies have no next step."""
    if frequency in FIXED_PERIODS:
        return instant + FIXED_PERIODS[frequency]
    if frequency == MONTHLY:
        return _add_month(instant)
    return None


def window_start_instant(bound: WindowBound) -> datetime:
    if isinstance(bound, datetime):
        return bound
    return datetime.combine(bound, time.min)


def window_end_instant(bound: WindowBound) -> datetime:
    if isinstance(bound, datetime):
        return bound
    return datetime.combine(bound, time.max)


def exception_dates(exceptions: Iterable[Union[ExceptionEntry, date]]) -> Set[date]:
    """Dates suppressed by the ledger. Any exception type suppresses."""
    out = set()
    for ex in exceptions or []:
        out.add(ex.date if isinstance(ex, ExceptionEntry) else ex)
    return out


def latest_exceptions(exceptions: Iterable[ExceptionEntry]) -> Dict[date, ExceptionEntry]:
    """Map each original date to its effective entry (last write wins)."""
    return {ex.date: ex for ex in exceptions or []}


def duplicate_exception_dates(exceptions: Iterable[ExceptionEntry]) -> List[date]:
    """Dates carrying more than one ledger entry."""
    seen, dupes = set(), set()
    for ex in exceptions or []:
        if ex.date in seen:
            dupes.add(ex.date)
        seen.add(ex.date)
    return sorted(dupes)


def generate_occurrences(
    rule: RecurrenceRule,
    exceptions: Iterable[Union[ExceptionEntry, date]],
    window_start: WindowBound,
    window_end: WindowBound,
    existing_real_slots: Iterable[Slot] = (),
    client_id: Optional[int] = None,
    default_duration: int = DEFAULT_DURATION,
) -> List[VirtualOccurrence]:
    """
    Project a rule into [window_start, window_end] (both inclusive).

    Skips dates present in the exception ledger and slots already held by a
    real appointment. Inactive or unanchored rules produce nothing. Weekly and
    biweekly rules jump straight to the window; monthly rules step towards it.
    Both stepping loops stop after MAX_STEPS and return what they have so far.
    """
    if not rule.active:
        return []
    instant = anchor_instant(rule)
    if instant is None:
        return []

    start = window_start_instant(window_start)
    end = window_end_instant(window_end)
    if start > end:
        return []

    skip_dates = exception_dates(exceptions)
    real = set(existing_real_slots or ())
    duration = rule.duration or default_duration
    value = rule.value or 0

    period = FIXED_PERIODS.get(rule.frequency)
    if period is not None and instant < start:
        # ceil((start - instant) / period)
        instant += period * -((instant - start) // period)

    steps = 0
    while instant < start:
        if steps >= MAX_STEPS:
            logging.warning(f"Recurrence for client {client_id}: window start not reached after {MAX_STEPS} steps")
            return []
        instant = step(instant, rule.frequency)
        if instant is None:
            return []
        steps += 1

    out: List[VirtualOccurrence] = []
    steps = 0
    while instant is not None and instant <= end:
        if steps >= MAX_STEPS:
            logging.warning(f"Recurrence for client {client_id}: stopped after {MAX_STEPS} occurrences")
            break
        d, t = instant.date(), instant.time()
        if d not in skip_dates and (d, t) not in real:
            out.append(VirtualOccurrence(client_id, d, t, duration, value))
        instant = step(instant, rule.frequency)
        steps += 1
    return out
