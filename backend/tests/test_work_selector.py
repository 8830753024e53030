"""
Tests for work_selector.py.

Coverage:
  - get_era_bucket      → bucket boundaries
  - pick_balanced_years → era representatives first, priority fill, dedupe, limits
"""

import unittest

from chronology.coverage.work_selector import YearCandidate, get_era_bucket, pick_balanced_years


class TestGetEraBucket(unittest.TestCase):

    def test_boundaries(self):
        self.assertEqual(get_era_bucket(-776), "ancient")
        self.assertEqual(get_era_bucket(500), "ancient")
        self.assertEqual(get_era_bucket(501), "medieval")
        self.assertEqual(get_era_bucket(1499), "medieval")
        self.assertEqual(get_era_bucket(1500), "modern")
        self.assertEqual(get_era_bucket(2008), "modern")


class TestPickBalancedYears(unittest.TestCase):

    def setUp(self):
        self.candidates = [
            YearCandidate(1200, 3, "missing"),
            YearCandidate(1300, 3, "missing"),
            YearCandidate(1800, 3, "missing"),
            YearCandidate(-100, 5, "low_quality"),
            YearCandidate(1900, 1, "low_quality"),
        ]

    def test_one_year_per_era_first(self):
        years = pick_balanced_years(self.candidates, 3)
        self.assertEqual(years, [1200, 1800, -100])

    def test_remaining_slots_follow_priority(self):
        years = pick_balanced_years(self.candidates, 5)
        self.assertEqual(years, [1200, 1800, -100, 1300, 1900])

    def test_higher_severity_wins_within_tier(self):
        candidates = [YearCandidate(1600, 1, "low_quality"), YearCandidate(1700, 4, "low_quality")]
        self.assertEqual(pick_balanced_years(candidates, 1), [1700])

    def test_count_smaller_than_bucket_count(self):
        self.assertEqual(pick_balanced_years(self.candidates, 1), [1200])

    def test_duplicates_keep_first_occurrence(self):
        candidates = [
            YearCandidate(1600, 1, "fallback"),
            YearCandidate(1600, 3, "missing"),
            YearCandidate(1650, 2, "low_quality"),
        ]
        years = pick_balanced_years(candidates, 5)
        self.assertEqual(years, [1650, 1600])

    def test_never_returns_more_than_available(self):
        self.assertEqual(len(pick_balanced_years(self.candidates, 50)), 5)

    def test_empty_inputs(self):
        self.assertEqual(pick_balanced_years([], 5), [])
        self.assertEqual(pick_balanced_years(self.candidates, 0), [])


if __name__ == "__main__":
    unittest.main()
