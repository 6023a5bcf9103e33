"""
Repository pattern for data access.

Handles the append-only usage log and the aggregates used for reporting.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageLogEntry

# Reporting figures are rounded to this many decimal places
REPORT_COST_PLACES = 8

_SELECT_COLUMNS = """
    SELECT id, model, input_text, output_text, input_tokens, output_tokens,
           total_tokens, input_cost, output_cost, total_cost, created_at
    FROM usage_log
"""


def _row_to_entry(row: tuple) -> UsageLogEntry:
    return UsageLogEntry(
        id=row[0],
        model=row[1],
        input_text=row[2],
        output_text=row[3],
        input_tokens=row[4],
        output_tokens=row[5],
        total_tokens=row[6],
        input_cost=Decimal(row[7]),
        output_cost=Decimal(row[8]),
        total_cost=Decimal(row[9]),
        created_at=datetime.fromisoformat(row[10]).replace(tzinfo=timezone.utc)
    )


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_log table if it doesn't exist.

    The table is append-only: triggers abort any UPDATE or DELETE.
    created_at is assigned by the database as a UTC ISO-8601 timestamp.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS usage_log (
                id TEXT PRIMARY KEY,
                model TEXT NOT NULL,
                input_text TEXT NOT NULL,
                output_text TEXT NOT NULL,
                input_tokens INTEGER NOT NULL CHECK (input_tokens >= 0),
                output_tokens INTEGER NOT NULL CHECK (output_tokens >= 0),
                total_tokens INTEGER NOT NULL CHECK (total_tokens >= 0),
                input_cost TEXT NOT NULL,
                output_cost TEXT NOT NULL,
                total_cost TEXT NOT NULL,
                created_at TEXT NOT NULL
                    DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now'))
            );

            CREATE INDEX IF NOT EXISTS usage_log_created_at
                ON usage_log (created_at);

            CREATE TRIGGER IF NOT EXISTS usage_log_no_update
            BEFORE UPDATE ON usage_log
            BEGIN
                SELECT RAISE(ABORT, 'usage_log is append-only');
            END;

            CREATE TRIGGER IF NOT EXISTS usage_log_no_delete
            BEFORE DELETE ON usage_log
            BEGIN
                SELECT RAISE(ABORT, 'usage_log is append-only');
            END;
        """)
        conn.commit()
    finally:
        conn.close()


def insert_usage_log(entry: UsageLogEntry, db_path: str = DEFAULT_DB_PATH) -> str:
    """Append a single entry to the usage log.

    Any created_at on the entry is ignored; the database assigns it.

    Args:
        entry: The usage log entry to record
        db_path: Path to SQLite database file

    Returns:
        The id of the inserted row
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            INSERT INTO usage_log
            (id, model, input_text, output_text, input_tokens, output_tokens,
             total_tokens, input_cost, output_cost, total_cost)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            entry.id,
            entry.model,
            entry.input_text,
            entry.output_text,
            entry.input_tokens,
            entry.output_tokens,
            entry.total_tokens,
            format(entry.input_cost, "f"),
            format(entry.output_cost, "f"),
            format(entry.total_cost, "f")
        ))
        conn.commit()
        return entry.id
    finally:
        conn.close()


def fetch_recent_usage_logs(
    limit: int = 50,
    db_path: str = DEFAULT_DB_PATH
) -> List[UsageLogEntry]:
    """Fetch the most recent usage log entries, newest first.

    Args:
        limit: Maximum number of entries to return
        db_path: Path to SQLite database file

    Returns:
        List of usage log entries ordered by created_at (newest first)
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute(
            _SELECT_COLUMNS + " ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,)
        )
        return [_row_to_entry(row) for row in cursor.fetchall()]
    finally:
        conn.close()


class UsageRepository:
    """Read-side access to the usage log for admin reporting."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def get_entries_since(self, start: datetime) -> List[UsageLogEntry]:
        """Get entries created at or after ``start``, oldest first."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                _SELECT_COLUMNS + " WHERE created_at >= ? ORDER BY created_at ASC",
                (start.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3],)
            )
            return [_row_to_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_usage_summary(
        self,
        days: int = 7,
        now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Aggregate usage over the last ``days`` days.

        The window starts at UTC midnight ``days`` days before ``now``.

        Args:
            days: Number of days to include
            now: Reference time (defaults to the current UTC time)

        Returns:
            Dictionary with totals, per-day usage (oldest first) and
            per-model usage (most expensive first)
        """
        if days < 0:
            raise ValueError("days must be >= 0")

        now = now or datetime.now(timezone.utc)
        start = (now - timedelta(days=days)).astimezone(timezone.utc).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        total_calls = 0
        total_tokens = 0
        total_cost = 0.0
        daily: Dict[str, Dict[str, Any]] = {}
        by_model: Dict[str, Dict[str, Any]] = {}

        for entry in self.get_entries_since(start):
            cost = float(entry.total_cost)
            total_calls += 1
            total_tokens += entry.total_tokens
            total_cost += cost

            day = daily.setdefault(
                entry.created_at.date().isoformat(),
                {"calls": 0, "total_tokens": 0, "total_cost": 0.0}
            )
            day["calls"] += 1
            day["total_tokens"] += entry.total_tokens
            day["total_cost"] += cost

            model = by_model.setdefault(
                entry.model,
                {"calls": 0, "total_tokens": 0, "total_cost": 0.0}
            )
            model["calls"] += 1
            model["total_tokens"] += entry.total_tokens
            model["total_cost"] += cost

        daily_usage = [
            {
                "date": date,
                "calls": data["calls"],
                "total_tokens": data["total_tokens"],
                "total_cost": round(data["total_cost"], REPORT_COST_PLACES),
            }
            for date, data in sorted(daily.items())
        ]
        model_usage = sorted(
            (
                {
                    "model": name,
                    "calls": data["calls"],
                    "total_tokens": data["total_tokens"],
                    "total_cost": round(data["total_cost"], REPORT_COST_PLACES),
                }
                for name, data in by_model.items()
            ),
            key=lambda item: item["total_cost"],
            reverse=True
        )

        return {
            "total_calls": total_calls,
            "total_tokens": total_tokens,
            "total_cost": round(total_cost, REPORT_COST_PLACES),
            "daily_usage": daily_usage,
            "model_usage": model_usage,
        }
