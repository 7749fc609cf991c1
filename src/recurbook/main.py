# src/recurbook/main.py

from datetime import date, time, timedelta
from typing import Optional

from .models import FREQUENCIES, Client, RecurrenceRule, RealOccurrence
from .config import load_config
from .data import Database
from .reconcile import list_events, sort_events, sync_for_user
from .validation import ValidationError


def format_event(occ) -> str:
    """One display line per event."""
    when = f"{occ.date.isoformat()} {occ.time.strftime('%H:%M')}"
    if isinstance(occ, RealOccurrence):
        appt = occ.appointment
        return f"{when}  client={occ.client_id}  #{appt.id} {appt.status}/{appt.payment_status}  {occ.duration}min  {occ.value:.2f}"
    return f"{when}  client={occ.client_id}  (recurring)  {occ.duration}min  {occ.value:.2f}"


def input_recurrence() -> Optional[RecurrenceRule]:
    print("\n✏️  New recurrence:")
    freq = input(f"  Frequency {FREQUENCIES}: ").strip() or "weekly"
    anchor = input("  First date (YYYY-MM-DD) [empty=today]: ").strip()
    at = input("  Time (HH:MM) [09:00]: ").strip() or "09:00"
    duration = input("  Duration in minutes [default]: ").strip()
    value = input("  Value [0]: ").strip()
    return RecurrenceRule(
        frequency=freq,
        anchor_date=date.fromisoformat(anchor) if anchor else date.today(),
        anchor_time=time.fromisoformat(at),
        duration=int(duration) if duration else None,
        value=float(value) if value else 0.0,
    )


def run_wizard():
    print("📅 recurbook")
    db = Database()
    try:
        user_id = input("User id: ").strip() or "local"

        while input("Add a client with a recurrence? (y/n) ").lower() == "y":
            name = input("  Name: ").strip()
            client = Client(user_id=user_id, name=name, recurrence=input_recurrence())
            try:
                db.save_client(client)
                print(f"  Saved client id={client.id}")
            except ValidationError as e:
                print(f"  {e}")

        created = sync_for_user(db, user_id)
        print(f"\n✅ Sync created {len(created)} appointment(s).")

        days = input("Show how many days ahead? [14] ").strip()
        start = date.today()
        end = start + timedelta(days=int(days) if days else 14)
        clients = db.list_clients(user_id)
        appts = db.list_in_range(user_id, start, end)
        events = sort_events(list_events(clients, appts, start, end, load_config()['default_duration']))
        print(f"\n{len(events)} event(s) from {start} to {end}:")
        for occ in events:
            print(" ", format_event(occ))
    finally:
        db.close()


if __name__ == "__main__":
    run_wizard()
