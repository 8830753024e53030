"""
Coverage analysis over the persisted event pool.

Everything here is a pure function of the per-year stats returned by
event_pool_service.get_all_years_with_stats() (or of a list of puzzle
target years), so the daily batch and the admin endpoint share one
implementation and tests never need a database.

Usage:
    stats = [YearCoverageStat.from_row(r) for r in event_pool_service.get_all_years_with_stats()]
    strategy = select_work(stats, count=10)
    strategy.target_years   # e.g. [-412, 907, 1733, ...]
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from chronology.coverage.work_selector import ERA_BUCKETS, YearCandidate, get_era_bucket, pick_balanced_years

logger = logging.getLogger(__name__)

YEAR_RANGE_START = -776
YEAR_RANGE_END = 2008
MIN_EVENTS_PER_YEAR = 6

# Years spanned by each bucket inside the supported range.
ERA_TOTALS = {
    "ancient": 500 - YEAR_RANGE_START + 1,   # 1,277
    "medieval": 1499 - 501 + 1,             # 999
    "modern": YEAR_RANGE_END - 1500 + 1,    # 509
}

MISSING_YEAR_SEVERITY = 3


@dataclass(frozen=True)
class YearCoverageStat:
    year: int
    total: int
    used: int
    available: int

    @classmethod
    def from_row(cls, row: dict) -> "YearCoverageStat":
        return cls(
            year=int(row["year"]),
            total=int(row["total"]),
            used=int(row.get("used", 0)),
            available=int(row.get("available", row["total"] - row.get("used", 0))),
        )


@dataclass
class CoverageGaps:
    missing_years: "list[int]"
    insufficient_years: "list[int]"
    coverage_by_era: "dict[str, float]"

    def to_dict(self) -> dict:
        return {
            "missing_year_count": len(self.missing_years),
            "insufficient_years": self.insufficient_years,
            "coverage_by_era": self.coverage_by_era,
        }


@dataclass
class CoverageStrategy:
    target_years: "list[int]"
    priority: str
    era_balance: "dict[str, int]" = field(default_factory=dict)


@dataclass
class PuzzleDemand:
    high_demand_years: "list[int]"
    demand_by_era: "dict[str, int]"
    selection_frequency: "dict[int, int]"


def analyze_coverage_gaps(
    year_stats: "list[YearCoverageStat]",
    min_events: int = MIN_EVENTS_PER_YEAR,
) -> CoverageGaps:
    """Missing years across the supported range, thin years, and per-era coverage."""
    years_with_events = {stat.year for stat in year_stats if stat.total > 0}

    missing_years = [
        year for year in range(YEAR_RANGE_START, YEAR_RANGE_END + 1)
        if year not in years_with_events
    ]
    insufficient_years = [stat.year for stat in year_stats if 0 < stat.total < min_events]

    era_counts = Counter(get_era_bucket(year) for year in years_with_events)
    coverage_by_era = {
        bucket: era_counts.get(bucket, 0) / ERA_TOTALS[bucket] for bucket in ERA_BUCKETS
    }

    return CoverageGaps(
        missing_years=missing_years,
        insufficient_years=insufficient_years,
        coverage_by_era=coverage_by_era,
    )


def build_year_candidates(
    gaps: CoverageGaps,
    year_stats: "list[YearCoverageStat]",
    min_events: int = MIN_EVENTS_PER_YEAR,
    fallback_limit: int = 50,
) -> "list[YearCandidate]":
    """
    Missing years rank highest, then thin years by how far below the minimum
    they sit. Only when neither exists do the least-stocked years become
    fallback candidates.
    """
    totals = {stat.year: stat.total for stat in year_stats}

    candidates = [YearCandidate(year, MISSING_YEAR_SEVERITY, "missing") for year in gaps.missing_years]
    candidates += [
        YearCandidate(year, min_events - totals.get(year, 0), "low_quality")
        for year in gaps.insufficient_years
    ]
    if candidates:
        return candidates

    thinnest = sorted(year_stats, key=lambda s: (s.available, s.year))[:fallback_limit]
    return [YearCandidate(stat.year, -stat.available, "fallback") for stat in thinnest]


def select_work(
    year_stats: "list[YearCoverageStat]",
    count: int,
    min_events: int = MIN_EVENTS_PER_YEAR,
) -> CoverageStrategy:
    gaps = analyze_coverage_gaps(year_stats, min_events)
    candidates = build_year_candidates(gaps, year_stats, min_events)
    target_years = pick_balanced_years(candidates, count)

    sources = {c.year: c.source for c in candidates}
    priority = sources[target_years[0]] if target_years else "fallback"
    era_balance = {bucket: 0 for bucket in ERA_BUCKETS}
    for year in target_years:
        era_balance[get_era_bucket(year)] += 1

    logger.info(
        "Coverage: missing=%d insufficient=%d selected=%s priority=%s",
        len(gaps.missing_years), len(gaps.insufficient_years), target_years, priority,
    )
    return CoverageStrategy(target_years=target_years, priority=priority, era_balance=era_balance)


def analyze_puzzle_demand(puzzle_target_years: "list[int]") -> PuzzleDemand:
    """
    Which years puzzles keep landing on. high_demand_years holds years used
    more than once, most-used first (ties by year).
    """
    frequency = Counter(puzzle_target_years)
    high_demand = sorted(
        (year for year, uses in frequency.items() if uses > 1),
        key=lambda year: (-frequency[year], year),
    )
    demand_by_era = {bucket: 0 for bucket in ERA_BUCKETS}
    for year in puzzle_target_years:
        demand_by_era[get_era_bucket(year)] += 1

    return PuzzleDemand(
        high_demand_years=high_demand,
        demand_by_era=demand_by_era,
        selection_frequency=dict(frequency),
    )
