"""
Puzzle Composer — accepts or rejects a year's events using the judge.

compose_puzzle_with_judge() never raises: bad input, judge rejection and
model failures all come back as a failed CompositionResult with a reason,
so a scheduler can move on to the next candidate year.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from chronology.composition.judge import PUZZLE_SIZE, judge_puzzle_composition
from chronology.generation.event_generator import derive_era
from chronology.generation.model_client import ModelClient, ModelClientError
from chronology.generation.schemas import PuzzleJudgment

logger = logging.getLogger(__name__)

MAX_COMPOSITION_ATTEMPTS = 3


@dataclass
class CompositionResult:
    status: str  # "success" | "failed"
    attempts: int
    ordered_events: "list[str]" = field(default_factory=list)
    judgment: "PuzzleJudgment | None" = None
    reason: "str | None" = None
    attempted_years: "list[int]" = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == "success"


def compose_puzzle_with_judge(client: ModelClient, year: int, events: "list[str]", prompts=None) -> CompositionResult:
    if len(events) < PUZZLE_SIZE:
        return CompositionResult(
            status="failed",
            attempts=0,
            reason=f"Need at least {PUZZLE_SIZE} events, got {len(events)}",
        )

    era = derive_era(year)
    try:
        result = judge_puzzle_composition(client, abs(year), era, events[:PUZZLE_SIZE], prompts)
    except (ModelClientError, ValueError) as exc:
        logger.error("Composer: judging failed for year=%d events=%d: %s", year, len(events), exc)
        return CompositionResult(status="failed", attempts=1, reason=str(exc))

    judgment = result.judgment
    if judgment.approved:
        logger.info("Composer: puzzle approved year=%d quality_score=%.3f", year, judgment.quality_score)
        return CompositionResult(
            status="success",
            attempts=1,
            ordered_events=list(judgment.ordering.recommended),
            judgment=judgment,
        )

    logger.info(
        "Composer: puzzle rejected year=%d quality_score=%.3f issues=%s",
        year, judgment.quality_score, judgment.issues,
    )
    return CompositionResult(
        status="failed",
        attempts=1,
        judgment=judgment,
        reason="; ".join(judgment.issues) or "Below quality threshold",
    )


def compose_puzzle_with_retries(
    next_candidates: "Callable[[], Optional[tuple[int, list[str]]]]",
    client: ModelClient,
    max_attempts: int = MAX_COMPOSITION_ATTEMPTS,
    prompts=None,
) -> CompositionResult:
    """
    Tries up to max_attempts candidate years, returning the first approved
    composition. next_candidates() yields (year, event_texts) or None when no
    candidates remain.
    """
    attempted_years: "list[int]" = []
    last_judgment = None

    for attempt in range(max_attempts):
        candidates = next_candidates()
        if candidates is None:
            return CompositionResult(
                status="failed",
                attempts=attempt,
                reason="No more year candidates available",
                judgment=last_judgment,
                attempted_years=attempted_years,
            )

        year, events = candidates
        attempted_years.append(year)
        result = compose_puzzle_with_judge(client, year, events, prompts)

        if result.succeeded:
            result.attempts = attempt + 1
            result.attempted_years = attempted_years
            return result

        last_judgment = result.judgment or last_judgment
        logger.warning(
            "Composer: year %d rejected (attempt %d/%d): %s",
            year, attempt + 1, max_attempts, result.reason,
        )

    return CompositionResult(
        status="failed",
        attempts=max_attempts,
        reason=f"All {max_attempts} attempts failed",
        judgment=last_judgment,
        attempted_years=attempted_years,
    )


def legacy_shuffle_events(events: "list[str]", rng: "random.Random | None" = None) -> "list[str]":
    """Pre-judge behaviour: a uniform shuffle, first six events."""
    shuffled = list(events)
    rng = rng or random.Random()
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled[:PUZZLE_SIZE]
