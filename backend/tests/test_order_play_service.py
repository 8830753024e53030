"""
Tests for order_play_service.py.

The Supabase client is patched at _get_client().

Coverage:
  - get_order_puzzle    → found / not found
  - record_order_play   → upsert row and conflict target
  - get_completed_plays → filters and ordering
"""

import unittest
from unittest.mock import MagicMock, patch

from chronology.services.order_play_service import (
    OrderPuzzleNotFoundError,
    get_completed_plays,
    get_order_puzzle,
    record_order_play,
)

PUZZLE = {
    "id": "puz-1",
    "puzzle_number": 12,
    "date": "2026-10-17",
    "events": [{"id": "a", "year": 1200, "text": "Genghis Khan unites the Mongols"}],
}


def _mock_client():
    return MagicMock()


class TestGetOrderPuzzle(unittest.TestCase):

    @patch("chronology.services.order_play_service._get_client")
    def test_returns_row(self, mock_get_client):
        client = _mock_client()
        mock_get_client.return_value = client
        chain = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        chain.execute.return_value = MagicMock(data=[PUZZLE])

        self.assertEqual(get_order_puzzle("puz-1"), PUZZLE)
        client.table.assert_called_once_with("order_puzzles")
        client.table.return_value.select.return_value.eq.assert_called_once_with("id", "puz-1")

    @patch("chronology.services.order_play_service._get_client")
    def test_missing_raises(self, mock_get_client):
        client = _mock_client()
        mock_get_client.return_value = client
        chain = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        chain.execute.return_value = MagicMock(data=[])

        with self.assertRaises(OrderPuzzleNotFoundError):
            get_order_puzzle("nope")


class TestRecordOrderPlay(unittest.TestCase):

    @patch("chronology.services.order_play_service._get_client")
    def test_upserts_on_user_and_puzzle(self, mock_get_client):
        client = _mock_client()
        mock_get_client.return_value = client
        upsert = client.table.return_value.upsert
        upsert.return_value.execute.return_value = MagicMock(data=[{"id": "play-1"}])

        stored = record_order_play("user-1", "puz-1", ["a"], [{"ordering": ["a"]}], {"attempts": 1})

        self.assertEqual(stored, {"id": "play-1"})
        row = upsert.call_args.args[0]
        self.assertEqual(row["user_id"], "user-1")
        self.assertEqual(row["puzzle_id"], "puz-1")
        self.assertEqual(row["score"], {"attempts": 1})
        self.assertIn("completed_at", row)
        self.assertEqual(upsert.call_args.kwargs, {"on_conflict": "user_id,puzzle_id"})

    @patch("chronology.services.order_play_service._get_client")
    def test_returns_row_when_no_data_echoed(self, mock_get_client):
        client = _mock_client()
        mock_get_client.return_value = client
        client.table.return_value.upsert.return_value.execute.return_value = MagicMock(data=[])

        stored = record_order_play("user-1", "puz-1", ["a"], [], {"attempts": 0})

        self.assertEqual(stored["user_id"], "user-1")


class TestGetCompletedPlays(unittest.TestCase):

    @patch("chronology.services.order_play_service._get_client")
    def test_filters_and_orders(self, mock_get_client):
        client = _mock_client()
        mock_get_client.return_value = client
        eq = client.table.return_value.select.return_value.eq
        is_ = eq.return_value.not_.is_
        order = is_.return_value.order
        order.return_value.execute.return_value = MagicMock(data=[{"puzzle_id": "puz-1"}])

        plays = get_completed_plays("user-1")

        self.assertEqual(plays, [{"puzzle_id": "puz-1"}])
        eq.assert_called_once_with("user_id", "user-1")
        is_.assert_called_once_with("completed_at", "null")
        order.assert_called_once_with("completed_at", desc=True)


if __name__ == "__main__":
    unittest.main()
