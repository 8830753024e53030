"""
Structured-output schemas shared by the generator and the puzzle judge.

These pydantic models are both the JSON Schema handed to the provider and
the validator the model client applies to the reply, so a field constraint
here is enforced on every model response.
"""

import math
from typing import Literal

from pydantic import BaseModel, Field, field_validator

EVENT_CATEGORIES = (
    "politics",
    "war",
    "science",
    "culture",
    "technology",
    "religion",
    "economy",
    "sports",
    "exploration",
    "arts",
)

EventCategory = Literal[
    "politics", "war", "science", "culture", "technology",
    "religion", "economy", "sports", "exploration", "arts",
]


class CandidateEvent(BaseModel):
    """One generated clue for a target year."""

    text: str = Field(
        min_length=5,
        max_length=200,
        description="Present tense, at most 20 words, names a person/place/institution, no year leakage.",
    )
    title: str = Field(min_length=3, max_length=100, description="Brief title, 3-5 words.")
    category: EventCategory
    difficulty: int = Field(ge=1, le=5, description="1 = famous, 5 = obscure.")
    region: str = Field(min_length=2, max_length=50, description="Geographic region.")

    @field_validator("difficulty", mode="before")
    @classmethod
    def _round_difficulty(cls, value):
        # Range-checked before rounding, then half rounds up: 2.5 becomes 3.
        if isinstance(value, float):
            if not 1 <= value <= 5:
                raise ValueError(f"difficulty must be between 1 and 5, got {value}")
            return math.floor(value + 0.5)
        return value


class GeneratorOutput(BaseModel):
    events: list[CandidateEvent] = Field(min_length=6, max_length=12)


# ---------------------------------------------------------------------------
# Puzzle judge
# ---------------------------------------------------------------------------

class CompositionScores(BaseModel):
    topic_diversity: float = Field(ge=0, le=1)
    geographic_spread: float = Field(ge=0, le=1)
    difficulty_gradient: float = Field(ge=0, le=1)
    guessability: float = Field(ge=0, le=1)


class OrderingRecommendation(BaseModel):
    recommended: list[str] = Field(
        min_length=6, max_length=6, description="The six event texts ordered hard to easy."
    )
    rationale: str


class PuzzleJudgment(BaseModel):
    approved: bool
    quality_score: float = Field(ge=0, le=1)
    ordering: OrderingRecommendation
    composition: CompositionScores
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
