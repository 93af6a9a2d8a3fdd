"""Evidence history bookkeeping for implemented requirements.

History is newest-first and holds at most one entry per calendar day: a
fetch on a day that already has an entry replaces it.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from config.loader import get_history_max_entries
from models.ssp import HistoryEntry


def make_history_entry(
    success: bool,
    status: Any = None,
    data: Any = None,
    error: str | None = None,
    now: Optional[datetime] = None,
) -> HistoryEntry:
    """Build an entry stamped with the current UTC time."""
    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return HistoryEntry(timestamp=timestamp, success=success, status=status, data=data, error=error)


def add_history_entry(
    history: list[HistoryEntry],
    entry: HistoryEntry,
    max_entries: int | None = None,
) -> list[HistoryEntry]:
    """Return a new history list with ``entry`` recorded.

    The input list is not modified.
    """
    limit = max_entries if max_entries is not None else get_history_max_entries()
    updated = list(history)

    same_day = next((i for i, existing in enumerate(updated) if existing.day == entry.day), None)
    if same_day is not None:
        updated[same_day] = entry
    else:
        updated.insert(0, entry)

    return updated[:limit]
