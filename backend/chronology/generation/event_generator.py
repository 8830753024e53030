"""
Event Generator — turns a target year into vetted historical clues.

A single model call both generates and self-validates the events; the
deterministic validators then run over every returned event as the
non-bypassable safety net. Events that fail are dropped and counted, never
regenerated. Deciding whether the survivors are enough is the caller's job
(see batch_runner.run_year_generation).

Usage:
    from chronology.generation.event_generator import EventGenerator, derive_era

    generator = EventGenerator(client)   # client: ModelClient for stage "event-generator"
    result = generator.generate(1969, derive_era(1969), count=10)
    [e.text for e in result.events]
"""

import logging
from dataclasses import dataclass, field

from chronology.generation.model_client import CostBreakdown, ModelClient, TokenUsage
from chronology.generation.prompts import EVENT_GENERATOR_PROMPT_ID, PromptResolver
from chronology.generation.schemas import CandidateEvent, GeneratorOutput
from chronology.quality.validators import explain_failures

logger = logging.getLogger(__name__)

STAGE = "event-generator"

# Call profile for the generator stage.
TEMPERATURE = 0.7
MAX_OUTPUT_TOKENS = 16_000
THINKING_LEVEL = "high"

# Matches the GeneratorOutput list bounds.
MIN_EVENTS_PER_CALL = 6
MAX_EVENTS_PER_CALL = 12

ERAS = ("BCE", "CE")


@dataclass
class GenerationResult:
    events: list[CandidateEvent]
    usage: TokenUsage
    cost: CostBreakdown
    model: str
    cache_hit: bool
    rejected: dict = field(default_factory=dict)  # event text -> failed rule names
    prompt_source: str = "fallback"

    @property
    def cost_usd(self) -> float:
        return self.cost.total_usd


def derive_era(year: int) -> str:
    """Zero and negative years are BCE, positive years are CE."""
    return "BCE" if year <= 0 else "CE"


def era_context(display_year: int, era: str) -> str:
    """Period-specific guidance appended to the user prompt ("" when none applies)."""
    if era == "BCE":
        if display_year > 500:
            return ("Context: Ancient world. Focus on named rulers, dynasties, and specific figures. "
                    "Civilizations: Egypt, Greece, Persia, Rome, China, India.")
        if display_year > 300:
            return ("Context: Classical period. Greek city-states, early Roman Republic, "
                    "Warring States China. Use specific names.")
        return ("Context: Hellenistic/late Republic period. Alexander's successors, Ptolemies, "
                "Roman expansion. Name specific people.")

    if display_year < 100:
        return "Context: Early Roman Empire. Focus on emperors, major figures, early Christianity."
    if display_year < 500:
        return "Context: Late Roman Empire / early medieval. Focus on named rulers and religious figures."
    if display_year < 1500:
        return "Context: Medieval period. Crusades, dynasties, religious figures, explorers."
    if display_year < 1800:
        return "Context: Early modern period. Renaissance, Reformation, exploration, colonization."
    return ""


def build_user_prompt(year: int, era: str, count: int) -> str:
    display_year = abs(year)
    context = era_context(display_year, era)

    lines = [f"Target year: {display_year} {era}"]
    if context:
        lines.append(context)
    lines += [
        "",
        f"Generate {count} high-quality historical events from exactly {display_year} {era}.",
        "",
        "Return JSON:",
        "{",
        '  "events": [',
        "    {",
        '      "text": "Present tense description, at most 20 words, no year leakage",',
        '      "title": "Brief title (3-5 words)",',
        '      "category": "politics|war|science|culture|technology|religion|economy|sports|exploration|arts",',
        '      "difficulty": 1-5 (1=famous, 5=obscure),',
        '      "region": "Geographic region"',
        "    }",
        "  ]",
        "}",
        "",
        "Remember: Only include events that pass ALL quality rules. Self-validate before including.",
    ]
    return "\n".join(lines)


class EventGenerator:
    def __init__(self, client: ModelClient, prompts: "PromptResolver | None" = None) -> None:
        self.client = client
        self.prompts = prompts or PromptResolver()

    @classmethod
    def from_settings(cls, settings, provider) -> "EventGenerator":
        client = ModelClient.from_settings(
            settings,
            provider,
            stage=STAGE,
            temperature=TEMPERATURE,
            max_output_tokens=MAX_OUTPUT_TOKENS,
            thinking_level=THINKING_LEVEL,
        )
        return cls(client, PromptResolver.from_settings(settings))

    def generate(self, year: int, era: str, count: int = 10) -> GenerationResult:
        """
        Generates up to `count` events for one year.

        Raises:
            ValueError:       era is not "BCE"/"CE" or count is outside 6..12.
            ModelClientError: the model client failed on primary and fallback.
        """
        if era not in ERAS:
            raise ValueError(f"era must be one of {ERAS}, got {era!r}")
        if not MIN_EVENTS_PER_CALL <= count <= MAX_EVENTS_PER_CALL:
            raise ValueError(f"count must be between {MIN_EVENTS_PER_CALL} and {MAX_EVENTS_PER_CALL}, got {count}")

        prompt = self.prompts.resolve(EVENT_GENERATOR_PROMPT_ID)
        response = self.client.generate(
            system=prompt.text,
            user=build_user_prompt(year, era, count),
            schema=GeneratorOutput,
            metadata={"stage": STAGE, "year": year, "era": era},
        )

        survivors: list[CandidateEvent] = []
        rejected: dict = {}
        for event in response.data.events:
            failures = explain_failures(event.text)
            if failures:
                rejected[event.text] = failures
            else:
                survivors.append(event)

        if rejected:
            logger.info(
                "[%s] year=%d era=%s safety net dropped %d/%d events",
                STAGE, year, era, len(rejected), len(response.data.events),
            )
            for text, failures in rejected.items():
                logger.debug("[%s] year=%d rejected (%s): %s", STAGE, year, ",".join(failures), text)

        return GenerationResult(
            events=survivors,
            usage=response.usage,
            cost=response.cost,
            model=response.metadata.model,
            cache_hit=response.metadata.cache_hit,
            rejected=rejected,
            prompt_source=prompt.source,
        )
