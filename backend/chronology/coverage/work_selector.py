"""
Work selector — picks which years the next generation batch should target.

Candidates come in three source tiers, in priority order:

    missing      the year has no events at all
    low_quality  the year has some events but fewer than the minimum
    fallback     every year is covered; top up the thinnest ones

Selection first takes the best candidate from each era bucket so a batch
spans ancient, medieval and modern history whenever it can, then fills the
remaining slots strictly by (tier, severity).
"""

from dataclasses import dataclass

ERA_BUCKETS = ("ancient", "medieval", "modern")

SOURCE_PRIORITY = {"missing": 0, "low_quality": 1, "fallback": 2}


@dataclass(frozen=True)
class YearCandidate:
    year: int
    severity: int
    source: str  # "missing" | "low_quality" | "fallback"


def get_era_bucket(year: int) -> str:
    """ancient up to and including 500, medieval 501-1499, modern from 1500."""
    if year <= 500:
        return "ancient"
    if year <= 1499:
        return "medieval"
    return "modern"


def _rank(candidate: YearCandidate) -> tuple:
    return (SOURCE_PRIORITY.get(candidate.source, len(SOURCE_PRIORITY)), -candidate.severity)


def pick_balanced_years(candidates: "list[YearCandidate]", count: int) -> "list[int]":
    """
    Returns at most `count` distinct years, era-balanced first, then by priority.

    Duplicate years keep their first occurrence. Fewer than `count` years are
    returned only when there are not enough distinct candidates.
    """
    if count <= 0 or not candidates:
        return []

    unique: "dict[int, YearCandidate]" = {}
    for candidate in candidates:
        unique.setdefault(candidate.year, candidate)
    pool = sorted(unique.values(), key=_rank)

    # Best representative of each bucket, most urgent bucket first.
    representatives = []
    for bucket in ERA_BUCKETS:
        best = next((c for c in pool if get_era_bucket(c.year) == bucket), None)
        if best is not None:
            representatives.append(best)
    representatives.sort(key=_rank)

    selected: "list[int]" = []
    for candidate in representatives:
        if len(selected) == count:
            break
        selected.append(candidate.year)

    chosen = set(selected)
    for candidate in pool:
        if len(selected) == count:
            break
        if candidate.year not in chosen:
            selected.append(candidate.year)
            chosen.add(candidate.year)

    return selected
