"""
Puzzle Judge — LLM review of a six-clue puzzle before it is published.

The judge scores composition (topic diversity, geographic spread, difficulty
gradient, guessability) and recommends a hard-to-easy hint order. Its own
approval verdict is not trusted: the quality score is recomputed from the
component scores with fixed weights, and the thresholds below decide.

Usage:
    judge_client = build_judge_client(settings, provider)
    result = judge_puzzle_composition(judge_client, 1969, "CE", event_texts)
    result.judgment.approved, result.judgment.ordering.recommended
"""

import logging
from dataclasses import dataclass

from chronology.generation.model_client import ModelClient, ModelClientError, TokenUsage
from chronology.generation.prompts import PUZZLE_JUDGE_PROMPT_ID, PromptResolver
from chronology.generation.schemas import PuzzleJudgment

logger = logging.getLogger(__name__)

STAGE = "puzzle-judge"

TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 4_000
THINKING_LEVEL = "medium"

PUZZLE_SIZE = 6

QUALITY_WEIGHTS = {
    "topic_diversity": 0.2,
    "geographic_spread": 0.2,
    "difficulty_gradient": 0.3,
    "guessability": 0.3,
}
APPROVAL_THRESHOLD = 0.6
MIN_COMPONENT_SCORE = 0.4


@dataclass
class JudgeResult:
    judgment: PuzzleJudgment
    request_id: str
    model: str
    usage: TokenUsage
    cost_usd: float
    cache_hit: bool
    fallback_from: "str | None" = None


def build_judge_client(settings, provider) -> ModelClient:
    return ModelClient.from_settings(
        settings,
        provider,
        model=settings.judge_model,
        stage=STAGE,
        temperature=TEMPERATURE,
        max_output_tokens=MAX_OUTPUT_TOKENS,
        thinking_level=THINKING_LEVEL,
    )


def build_judge_user_prompt(year: int, era: str, events: "list[str]") -> str:
    event_list = "\n".join(f"{i}. {text}" for i, text in enumerate(events, 1))
    return (
        f"Target year: {abs(year)} {era}\n\n"
        "Evaluate this puzzle and reorder the events from HARDEST to EASIEST:\n\n"
        f"{event_list}\n\n"
        "IMPORTANT:\n"
        "1. Return the events in your recommended order (hard to easy)\n"
        "2. Use the EXACT event text from the input\n"
        "3. Score each composition dimension 0-1\n"
        f"4. Approve only if quality_score >= {APPROVAL_THRESHOLD} "
        f"and all components >= {MIN_COMPONENT_SCORE}"
    )


def enforce_approval_thresholds(judgment: PuzzleJudgment) -> PuzzleJudgment:
    """
    Recomputes quality_score from the weighted components and re-decides
    approval. When this overturns the judge's own approval, the reasons are
    appended to issues.
    """
    scores = judgment.composition.model_dump()
    computed = sum(weight * scores[name] for name, weight in QUALITY_WEIGHTS.items())

    meets_overall = computed >= APPROVAL_THRESHOLD
    low_components = [name for name in QUALITY_WEIGHTS if scores[name] < MIN_COMPONENT_SCORE]
    should_approve = meets_overall and not low_components

    issues = list(judgment.issues)
    if judgment.approved and not should_approve:
        if not meets_overall:
            issues.append(f"Quality score {computed:.2f} below {APPROVAL_THRESHOLD} threshold")
        if low_components:
            issues.append(f"Low scores: {', '.join(low_components)}")

    return judgment.model_copy(update={
        "quality_score": round(computed, 3),
        "approved": should_approve,
        "issues": issues,
    })


def judge_puzzle_composition(
    client: ModelClient,
    year: int,
    era: str,
    events: "list[str]",
    prompts: "PromptResolver | None" = None,
) -> JudgeResult:
    """
    Raises:
        ValueError:       fewer than six events, or an era other than BCE/CE.
        ModelClientError: the judge model failed on primary and fallback.
    """
    if len(events) < PUZZLE_SIZE:
        raise ValueError(f"Need at least {PUZZLE_SIZE} events, got {len(events)}")
    if era not in ("BCE", "CE"):
        raise ValueError(f"Invalid era: {era!r}")

    prompt = (prompts or PromptResolver()).resolve(
        PUZZLE_JUDGE_PROMPT_ID,
        {"approval_threshold": APPROVAL_THRESHOLD, "min_component_score": MIN_COMPONENT_SCORE},
    )

    try:
        response = client.generate(
            system=prompt.text,
            user=build_judge_user_prompt(year, era, events),
            schema=PuzzleJudgment,
            metadata={"stage": STAGE, "year": year, "era": era},
        )
    except ModelClientError:
        logger.error("[%s] judge call failed year=%d era=%s events=%d", STAGE, year, era, len(events))
        raise

    judgment = enforce_approval_thresholds(response.data)
    logger.info(
        "[%s] %s year=%d approved=%s quality_score=%.3f tokens=%d",
        STAGE, response.metadata.request_id, year, judgment.approved,
        judgment.quality_score, response.usage.total_tokens,
    )

    return JudgeResult(
        judgment=judgment,
        request_id=response.metadata.request_id,
        model=response.metadata.model,
        usage=response.usage,
        cost_usd=response.cost.total_usd,
        cache_hit=response.metadata.cache_hit,
        fallback_from=response.metadata.fallback_from,
    )
