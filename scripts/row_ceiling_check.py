"""Report per-event row counts in odds/open_odds and flag known ceilings.

Events sitting at exactly 1000 rows (or any other ceiling passed on the
command line) are the ones to compare against the provider payload.

Usage: python scripts/row_ceiling_check.py [db_path] [ceiling ...]
"""

import sqlite3
import sys

db_path = sys.argv[1] if len(sys.argv) > 1 else "/app/data/sharp_odds.db"
ceilings = {int(c) for c in sys.argv[2:]} or {1000}

db = sqlite3.connect(db_path)
db.row_factory = sqlite3.Row

tables = {r[0] for r in db.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
if not {"odds", "open_odds"} <= tables:
    print("odds/open_odds tables not found.")
    sys.exit(1)

rows = db.execute("""
    SELECT
        e.event_id,
        e.league,
        (SELECT COUNT(*) FROM odds o WHERE o.event_id = e.event_id) AS current_rows,
        (SELECT COUNT(*) FROM open_odds p WHERE p.event_id = e.event_id) AS opening_rows
    FROM (
        SELECT event_id, league FROM odds
        UNION
        SELECT event_id, league FROM open_odds
    ) e
    ORDER BY current_rows DESC
""").fetchall()

flagged = 0
mismatched = 0
print(f"=== Rows per event ({len(rows)} events) ===")
for r in rows:
    marks = []
    if r["current_rows"] in ceilings or r["opening_rows"] in ceilings:
        marks.append("AT CEILING")
        flagged += 1
    if r["current_rows"] != r["opening_rows"]:
        marks.append("TABLES DIFFER")
        mismatched += 1
    if marks:
        print(
            f"  {r['event_id']} ({r['league']}): odds={r['current_rows']} "
            f"open_odds={r['opening_rows']}  <- {', '.join(marks)}"
        )

print(f"\n=== Summary ===")
print(f"  Ceilings checked:   {sorted(ceilings)}")
print(f"  Events at ceiling:  {flagged}")
print(f"  Events mismatched:  {mismatched}")
db.close()
sys.exit(1 if flagged or mismatched else 0)
