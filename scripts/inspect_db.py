import sys
from datetime import date, timedelta
from recurbook.data import Database
from recurbook.calendar_logic import generate_occurrences, duplicate_exception_dates

db = Database(sys.argv[1] if len(sys.argv) > 1 else None)
cur = db.conn.cursor()
print('Clients:')
cur.execute("SELECT id, user_id, name FROM clients")
for row in cur.fetchall():
    print(dict(row))

print('\nRecurrences:')
for row in db.conn.execute("SELECT * FROM recurrences"):
    print(dict(row))

print('\nLedgers:')
today = date.today()
for row in db.conn.execute("SELECT id FROM clients"):
    client = db.get_client(row['id'])
    rule = client.recurrence
    if rule is None:
        continue
    for ex in rule.exceptions:
        print(' ', client.id, ex.date, ex.type, ex.new_date or '', ex.new_time or '')
    dupes = duplicate_exception_dates(rule.exceptions)
    if dupes:
        print('  Client', client.id, 'has several exceptions for:', dupes)
    upcoming = generate_occurrences(rule, rule.exceptions, today, today + timedelta(days=28), client_id=client.id)
    print('  Client', client.id, 'next occurrences:', [o.date.isoformat() for o in upcoming[:5]])

print('\nDone')
db.close()
