"""
Event Pool Service — read/write access to generated events in Supabase.

Table: events
    id                 uuid
    year               int      signed, negative = BCE
    event              text     the clue shown to players
    classic_puzzle_id  uuid     set once the event is used by a classic puzzle
    created_at         timestamptz

Table: puzzles (classic mode, read only here)
    target_year        int

Public API
----------
get_all_years_with_stats()      → list[dict]  - {year, total, used, available} per year
import_year_events(year, texts) → dict        - {year, total, created, skipped}
get_events_for_year(year)       → list[dict]  - raw rows for one year
get_puzzle_target_years()       → list[int]   - target year of every classic puzzle
"""

import logging
import os
from collections import defaultdict

logger = logging.getLogger(__name__)

# PostgREST caps a single response; read large tables in pages of this size.
PAGE_SIZE = 1000


# ---------------------------------------------------------------------------
# Supabase client (lazy singleton, service_role key)
# The import is deferred so tests that mock _get_client() never need the
# real package.
# ---------------------------------------------------------------------------
_supabase = None


def _get_client():
    """Returns the shared Supabase client, creating it on first call."""
    global _supabase
    if _supabase is None:
        try:
            from supabase import create_client
        except ImportError:
            raise RuntimeError(
                "supabase package is not installed. "
                "Run: pip install 'supabase>=2.0.0'"
            )
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            raise RuntimeError(
                "SUPABASE_URL and SUPABASE_KEY environment variables must be set. "
                "Add them to backend/.env."
            )
        _supabase = create_client(url, key)
    return _supabase


def _select_all(supabase, table: str, columns: str) -> "list[dict]":
    """Pages through a whole table with range() until a short page comes back.

    Rows are ordered by id so page boundaries stay stable between requests.
    """
    rows: "list[dict]" = []
    start = 0
    while True:
        result = (
            supabase.table(table)
            .select(columns)
            .order("id")
            .range(start, start + PAGE_SIZE - 1)
            .execute()
        )
        page = result.data or []
        rows.extend(page)
        if len(page) < PAGE_SIZE:
            return rows
        start += PAGE_SIZE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_all_years_with_stats() -> "list[dict]":
    """
    Aggregates the events table per year, sorted by year.

    An event counts as used once classic_puzzle_id is set.

    Example return value:
        [{"year": -44, "total": 9, "used": 6, "available": 3}, ...]
    """
    supabase = _get_client()
    rows = _select_all(supabase, "events", "year, classic_puzzle_id")

    totals: dict = defaultdict(int)
    used: dict = defaultdict(int)
    for row in rows:
        year = row["year"]
        totals[year] += 1
        if row.get("classic_puzzle_id"):
            used[year] += 1

    return [
        {
            "year": year,
            "total": totals[year],
            "used": used[year],
            "available": totals[year] - used[year],
        }
        for year in sorted(totals)
    ]


def get_events_for_year(year: int) -> "list[dict]":
    supabase = _get_client()
    result = (
        supabase.table("events")
        .select("id, year, event, classic_puzzle_id")
        .eq("year", year)
        .execute()
    )
    return result.data or []


def import_year_events(year: int, events: "list[str]") -> dict:
    """
    Appends event texts under a year, skipping exact duplicates.

    A text is a duplicate when the year already holds the identical string,
    or when it repeats earlier in the same call.

    Returns:
        {"year": int, "total": int, "created": int, "skipped": int}
    """
    supabase = _get_client()
    existing = {row["event"] for row in get_events_for_year(year)}

    new_rows = []
    seen = set(existing)
    for text in events:
        cleaned = text.strip()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        new_rows.append({"year": year, "event": cleaned})

    if new_rows:
        supabase.table("events").insert(new_rows).execute()

    summary = {
        "year": year,
        "total": len(events),
        "created": len(new_rows),
        "skipped": len(events) - len(new_rows),
    }
    logger.info("Imported events for year %d: created=%d skipped=%d", year, summary["created"], summary["skipped"])
    return summary


def get_puzzle_target_years() -> "list[int]":
    supabase = _get_client()
    return [row["target_year"] for row in _select_all(supabase, "puzzles", "target_year")]
