"""
Order Play Service — Order-mode puzzles and completed plays in Supabase.

Table: order_puzzles
    id, puzzle_number, date, events jsonb  [{"id", "year", "text"}, ...]

Table: order_plays   UNIQUE (user_id, puzzle_id)
    user_id, puzzle_id, ordering jsonb, attempts jsonb, score jsonb,
    completed_at timestamptz

The unique constraint is what guarantees at most one recorded play per user
and puzzle; record_order_play() upserts against it.
"""

import logging
import os
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


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
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY environment variables must be set.")
        _supabase = create_client(url, key)
    return _supabase


class OrderPuzzleNotFoundError(Exception):
    """Raised when no order puzzle exists for the requested id."""


def get_order_puzzle(puzzle_id: str) -> dict:
    """
    Raises:
        OrderPuzzleNotFoundError: No row with that id.
    """
    supabase = _get_client()
    result = (
        supabase.table("order_puzzles")
        .select("id, puzzle_number, date, events")
        .eq("id", puzzle_id)
        .limit(1)
        .execute()
    )
    if not result.data:
        raise OrderPuzzleNotFoundError(f"Order puzzle {puzzle_id} not found")
    return result.data[0]


def record_order_play(
    user_id: str,
    puzzle_id: str,
    ordering: "list[str]",
    attempts: "list[dict]",
    score: dict,
) -> dict:
    """Upserts the completed play for (user_id, puzzle_id) and returns the stored row."""
    supabase = _get_client()
    row = {
        "user_id": user_id,
        "puzzle_id": puzzle_id,
        "ordering": ordering,
        "attempts": attempts,
        "score": score,
        "completed_at": datetime.now(timezone.utc).isoformat(),
    }
    result = (
        supabase.table("order_plays")
        .upsert(row, on_conflict="user_id,puzzle_id")
        .execute()
    )
    logger.info("Recorded order play user=%s puzzle=%s attempts=%d", user_id, puzzle_id, len(attempts))
    return result.data[0] if result.data else row


def get_completed_plays(user_id: str) -> "list[dict]":
    supabase = _get_client()
    result = (
        supabase.table("order_plays")
        .select("puzzle_id, ordering, score, completed_at")
        .eq("user_id", user_id)
        .not_.is_("completed_at", "null")
        .order("completed_at", desc=True)
        .execute()
    )
    return result.data or []
