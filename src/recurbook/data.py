import os
import sqlite3
from datetime import date, datetime, time
from typing import List, Optional
from recurbook.models import Client, RecurrenceRule, ExceptionEntry, Appointment
from recurbook.validation import validate_recurrence, validate_appointment, validate_exception
import logging

_APPOINTMENT_FIELDS = (
    'client_id', 'date', 'time', 'duration', 'value',
    'status', 'payment_status', 'notes', 'user_id',
)


def _iso_day(d: date) -> str:
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def _hhmm(t: Optional[time]) -> Optional[str]:
    return t.strftime('%H:%M') if t is not None else None


def _parse_day(s: Optional[str]) -> Optional[date]:
    return date.fromisoformat(s) if s else None


def _parse_time(s: Optional[str]) -> Optional[time]:
    return time.fromisoformat(s) if s else None


class Database:
    """
    Local store for clients, their recurrence rules, the per-client exception
    ledger and appointments. Serves as both the client store and the
    appointment store of the reconciler.
    """

    def __init__(self, db_path: str = None):
        try:
            self.db_path = db_path or os.path.join(os.path.expanduser("~"), ".recurbook", "recurbook.db")
            if self.db_path != ':memory:':
                os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
            self.conn = sqlite3.connect(self.db_path)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA foreign_keys = ON;")
            self._ensure_tables()
        except Exception as e:
            logging.error(f"Database connection error: {e}")
            raise

    def _ensure_tables(self):
        cur = self.conn.cursor()
        cur.execute("""
        CREATE TABLE IF NOT EXISTS clients (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user_id TEXT NOT NULL,
          name TEXT NOT NULL,
          phone TEXT,
          email TEXT,
          notes TEXT
        )""")

        # One rule per client; the ledger lives in its own table
        cur.execute("""
        CREATE TABLE IF NOT EXISTS recurrences (
          client_id INTEGER PRIMARY KEY,
          frequency TEXT NOT NULL,
          anchor_date TEXT,
          anchor_time TEXT,
          duration INTEGER,
          value REAL,
          active INTEGER NOT NULL,
          FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
        )""")

        # Append-only: rows are never updated, insertion order decides "last wins"
        cur.execute("""
        CREATE TABLE IF NOT EXISTS recurrence_exceptions (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          client_id INTEGER NOT NULL,
          date TEXT NOT NULL,
          type TEXT NOT NULL,
          new_date TEXT,
          new_time TEXT,
          FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
        )""")

        cur.execute("""
        CREATE TABLE IF NOT EXISTS appointments (
          id INTEGER PRIMARY KEY AUTOINCREMENT,
          user_id TEXT,
          client_id INTEGER NOT NULL,
          date TEXT NOT NULL,
          time TEXT NOT NULL,
          duration INTEGER NOT NULL,
          value REAL NOT NULL,
          status TEXT NOT NULL,
          payment_status TEXT NOT NULL,
          notes TEXT,
          FOREIGN KEY(client_id) REFERENCES clients(id) ON DELETE CASCADE
        )""")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_appointments_client_date ON appointments(client_id, date)")

        self.conn.commit()

    # Export/Import
    def export_to_sql(self, filename: str):
        """Dump all tables as SQL statements."""
        with open(filename, 'w', encoding='utf-8') as f:
            for line in self.conn.iterdump():
                f.write(f"{line}\n")

    def import_from_sql(self, filename: str):
        """Drop the existing tables, then run the dump."""
        cur = self.conn.cursor()
        for tbl in ('recurrence_exceptions', 'appointments', 'recurrences', 'clients'):
            cur.execute(f"DROP TABLE IF EXISTS {tbl}")
        self.conn.commit()

        with open(filename, 'r', encoding='utf-8') as f:
            script = f.read()
        # the dump lists tables alphabetically, children before parents
        self.conn.execute("PRAGMA foreign_keys = OFF;")
        try:
            self.conn.executescript(script)
            self.conn.commit()
        finally:
            self.conn.execute("PRAGMA foreign_keys = ON;")

    # Client methods
    def save_client(self, client: Client) -> int:
        cur = self.conn.cursor()
        if client.recurrence is not None:
            validate_recurrence(client.recurrence)
        is_new = client.id is None
        if is_new:
            cur.execute(
                "INSERT INTO clients (user_id, name, phone, email, notes) VALUES (?,?,?,?,?)",
                (client.user_id, client.name, client.phone, client.email, client.notes)
            )
            client.id = cur.lastrowid
        else:
            cur.execute(
                "UPDATE clients SET user_id=?, name=?, phone=?, email=?, notes=? WHERE id=?",
                (client.user_id, client.name, client.phone, client.email, client.notes, client.id)
            )
        self.conn.commit()
        if client.recurrence is not None:
            self.update_recurrence(client.id, client.recurrence)
            if is_new:
                for ex in client.recurrence.exceptions:
                    self._insert_exception(client.id, ex)
                self.conn.commit()
        return client.id

    def get_client(self, client_id: int) -> Optional[Client]:
        row = self.conn.execute("SELECT * FROM clients WHERE id=?", (client_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_client(row)

    def list_clients(self, user_id: str) -> List[Client]:
        rows = self.conn.execute("SELECT * FROM clients WHERE user_id=? ORDER BY name", (user_id,)).fetchall()
        return [self._row_to_client(r) for r in rows]

    def list_active_with_recurrence(self, user_id: str) -> List[Client]:
        rows = self.conn.execute(
            "SELECT c.* FROM clients c JOIN recurrences r ON r.client_id = c.id "
            "WHERE c.user_id=? AND r.active=1 ORDER BY c.id",
            (user_id,)
        ).fetchall()
        return [self._row_to_client(r) for r in rows]

    def delete_client(self, client_id: int):
        cur = self.conn.cursor()
        cur.execute("DELETE FROM clients WHERE id=?", (client_id,))
        self.conn.commit()

    def _row_to_client(self, row) -> Client:
        c = Client(row['user_id'], row['name'], row['phone'] or "", row['email'] or "", row['notes'] or "")
        c.id = row['id']
        c.recurrence = self.load_recurrence(c.id)
        return c

    # Recurrence methods
    def load_recurrence(self, client_id: int) -> Optional[RecurrenceRule]:
        row = self.conn.execute("SELECT * FROM recurrences WHERE client_id=?", (client_id,)).fetchone()
        if row is None:
            return None
        return RecurrenceRule(
            frequency=row['frequency'],
            anchor_date=_parse_day(row['anchor_date']),
            anchor_time=_parse_time(row['anchor_time']),
            duration=row['duration'],
            value=row['value'] if row['value'] is not None else 0.0,
            active=bool(row['active']),
            exceptions=self.load_exceptions(client_id),
        )

    def update_recurrence(self, client_id: int, rule: RecurrenceRule):
        """Write the rule fields. The exception ledger is left untouched."""
        validate_recurrence(rule)
        active = True if rule.active is None else rule.active
        self.conn.execute(
            "REPLACE INTO recurrences (client_id, frequency, anchor_date, anchor_time, duration, value, active) "
            "VALUES (?,?,?,?,?,?,?)",
            (client_id, rule.frequency,
             rule.anchor_date.isoformat() if rule.anchor_date else None,
             _hhmm(rule.anchor_time), rule.duration, rule.value, int(active))
        )
        self.conn.commit()

    def load_exceptions(self, client_id: int) -> List[ExceptionEntry]:
        rows = self.conn.execute(
            "SELECT date, type, new_date, new_time FROM recurrence_exceptions WHERE client_id=? ORDER BY id",
            (client_id,)
        ).fetchall()
        return [
            ExceptionEntry(date.fromisoformat(r['date']), r['type'], _parse_day(r['new_date']), _parse_time(r['new_time']))
            for r in rows
        ]

    def add_recurrence_exception(self, client_id: int, entry: ExceptionEntry):
        """Append one entry to the client's ledger without rewriting the others."""
        validate_exception(entry)
        if self.conn.execute("SELECT 1 FROM clients WHERE id=?", (client_id,)).fetchone() is None:
            raise LookupError(f"Client {client_id} not found")
        self._insert_exception(client_id, entry)
        self.conn.commit()

    def _insert_exception(self, client_id: int, entry: ExceptionEntry):
        self.conn.execute(
            "INSERT INTO recurrence_exceptions (client_id, date, type, new_date, new_time) VALUES (?,?,?,?,?)",
            (client_id, entry.date.isoformat(), entry.type,
             entry.new_date.isoformat() if entry.new_date else None, _hhmm(entry.new_time))
        )

    # Appointment methods
    def create_appointment(self, appt: Appointment) -> int:
        validate_appointment(appt)
        cur = self.conn.cursor()
        cur.execute(
            "INSERT INTO appointments (user_id, client_id, date, time, duration, value, status, payment_status, notes) "
            "VALUES (?,?,?,?,?,?,?,?,?)",
            (appt.user_id, appt.client_id, appt.date.isoformat(), _hhmm(appt.time), appt.duration,
             appt.value, appt.status, appt.payment_status, appt.notes)
        )
        appt.id = cur.lastrowid
        self.conn.commit()
        return appt.id

    def get_appointment(self, appt_id: int) -> Optional[Appointment]:
        row = self.conn.execute("SELECT * FROM appointments WHERE id=?", (appt_id,)).fetchone()
        return self._row_to_appointment(row) if row else None

    def update_appointment(self, appt_id: int, **changes):
        appt = self.get_appointment(appt_id)
        if appt is None:
            raise LookupError(f"Appointment {appt_id} not found")
        unknown = set(changes) - set(_APPOINTMENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown appointment fields: {sorted(unknown)}")
        if not changes:
            raise ValueError("No fields to update")
        for key, val in changes.items():
            setattr(appt, key, val)
        validate_appointment(appt)
        self.conn.execute(
            "UPDATE appointments SET user_id=?, client_id=?, date=?, time=?, duration=?, value=?, "
            "status=?, payment_status=?, notes=? WHERE id=?",
            (appt.user_id, appt.client_id, appt.date.isoformat(), _hhmm(appt.time), appt.duration,
             appt.value, appt.status, appt.payment_status, appt.notes, appt_id)
        )
        self.conn.commit()

    def delete_appointment(self, appt_id: int):
        cur = self.conn.cursor()
        cur.execute("DELETE FROM appointments WHERE id=?", (appt_id,))
        self.conn.commit()

    def list_by_client_in_range(self, client_id: int, start: date, end: date) -> List[Appointment]:
        rows = self.conn.execute(
            "SELECT * FROM appointments WHERE client_id=? AND date BETWEEN ? AND ? ORDER BY date, time",
            (client_id, _iso_day(start), _iso_day(end))
        ).fetchall()
        return [self._row_to_appointment(r) for r in rows]

    def list_in_range(self, user_id: Optional[str], start: date, end: date) -> List[Appointment]:
        query = "SELECT a.* FROM appointments a JOIN clients c ON c.id = a.client_id WHERE a.date BETWEEN ? AND ?"
        params = [_iso_day(start), _iso_day(end)]
        if user_id is not None:
            query += " AND c.user_id=?"
            params.append(user_id)
        query += " ORDER BY a.date, a.time"
        return [self._row_to_appointment(r) for r in self.conn.execute(query, params)]

    def _row_to_appointment(self, row) -> Appointment:
        appt = Appointment(
            client_id=row['client_id'],
            date=date.fromisoformat(row['date']),
            time=time.fromisoformat(row['time']),
            duration=row['duration'],
            value=row['value'],
            status=row['status'],
            payment_status=row['payment_status'],
            notes=row['notes'] or "",
            user_id=row['user_id'],
        )
        appt.id = row['id']
        return appt

    def close(self):
        """Close the connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
