"""
Prompt registry — two-tier resolution of system prompts.

Tier 1 is an optional prompt-management service reached over HTTP:

    GET {PROMPT_SERVICE_URL}/prompts/{prompt_id}?label={label}
    -> {"prompt": "<template text>", "version": 7}

Tier 2 is the compiled-in FALLBACK_PROMPTS table below. Any tier-1 problem
(service not configured, timeout, HTTP error, malformed body) resolves to
tier 2, so prompt lookup never fails a generation run.

Both tiers are plain templates; {{name}} placeholders are replaced with the
caller's variables, dicts and lists are JSON-encoded, and placeholders with
no matching variable are left untouched.

Usage:
    resolver = PromptResolver.from_settings(settings)
    prompt = resolver.resolve("event-generator")
    prompt.text, prompt.source   # ("You are a historian ...", "fallback")
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)

PROMPT_VERSION = "v1"

EVENT_GENERATOR_PROMPT_ID = "event-generator"
PUZZLE_JUDGE_PROMPT_ID = "puzzle-judge"

FALLBACK_PROMPTS = {
    EVENT_GENERATOR_PROMPT_ID: """You are a historian creating clues for a year-guessing game.

Generate historical events that occurred in EXACTLY the target year.

QUALITY RULES - Self-validate each event before including:
1. FACTUAL: Event must be real and dated to the exact target year
2. NO LEAKAGE: No numbers of ten or more, no "century", "decade", "BC", "AD", "BCE", "CE"
3. PROPER NOUNS: Each event must name a person, place, or institution
4. CONCISE: Present tense, at most 20 words
5. GUESSABLE: Should help players deduce the year without being obvious
6. NOT VAGUE: Avoid generic phrases like "A major event occurs" or "Something important happens"

DIVERSITY RULES:
- Mix topics: politics, war, science, culture, technology, religion, economy, sports, exploration, arts
- Mix regions: Europe, Asia, Americas, Africa, Middle East - not all Western
- Mix difficulty: some easy (famous), some hard (obscure)

Only return events that pass ALL quality rules. Return fewer high-quality events rather than many low-quality ones.""",

    PUZZLE_JUDGE_PROMPT_ID: """You are a puzzle judge deciding whether a set of 6 historical event clues makes a good year-guessing puzzle.

GAME RULES:
- Players guess a historical year from event clues
- Hints are revealed one at a time, hint 1 first and hint 6 last
- Players should be able to guess correctly by hint 4-6

QUALITY CRITERIA:

1. DIFFICULTY GRADIENT (hard to easy)
   - Hint 1: obscure, needs deep history knowledge
   - Hints 2-5: progressively more famous
   - Hint 6: the clincher, an iconic event most people know
   Score 1.0 for a perfect gradient, 0.0 if inverted

2. TOPIC DIVERSITY
   - Mix war, politics, science, culture, sports, technology, economy, religion, arts
   - Avoid 3+ clues from the same domain
   Score 1.0 if well mixed, 0.0 if all one topic

3. GEOGRAPHIC SPREAD
   - Include several regions (Europe, Americas, Asia, Africa, Middle East)
   Score 1.0 if global, 0.0 if single region

4. GUESSABILITY
   - By hint 4-6 a history enthusiast should deduce the year
   Score 1.0 if clearly guessable, 0.0 if impossible

APPROVAL THRESHOLD:
- quality_score >= {{approval_threshold}} to approve
- every composition score >= {{min_component_score}}

OUTPUT FORMAT (JSON):
- approved: boolean
- quality_score: 0-1, weighted average of the composition scores
- ordering.recommended: the 6 event texts ordered HARD to EASY
- ordering.rationale: brief explanation
- composition: {topic_diversity, geographic_spread, difficulty_gradient, guessability}, 0-1 each
- issues: brief problems, if any
- suggestions: brief improvements, if any

BE CONCISE. Keep issues and suggestions to 1-5 words each.""",
}


@dataclass
class PromptResult:
    text: str
    source: str  # "remote" | "fallback"
    version: str
    prompt_id: str


def compile_prompt(template: str, variables: Optional[dict] = None) -> str:
    """Replaces {{name}} placeholders; None values leave the placeholder in place."""
    result = template
    for key, value in (variables or {}).items():
        if value is None:
            continue
        rendered = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        result = result.replace("{{" + key + "}}", rendered)
    return result


class PromptResolver:
    """
    Resolves prompt templates from the prompt service with in-code fallback.

    base_url=None disables the remote tier entirely, which is the default
    for local development and tests.
    """

    def __init__(
        self,
        base_url: "str | None" = None,
        timeout_seconds: float = 3.0,
        default_label: str = "latest",
        session: "requests.Session | None" = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout_seconds = timeout_seconds
        self.default_label = default_label
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings) -> "PromptResolver":
        return cls(
            base_url=settings.prompt_service_url,
            timeout_seconds=settings.prompt_service_timeout_seconds,
            default_label=settings.prompt_label,
        )

    def resolve(
        self,
        prompt_id: str,
        variables: Optional[dict] = None,
        label: "str | None" = None,
    ) -> PromptResult:
        if prompt_id not in FALLBACK_PROMPTS:
            raise ValueError(f"Unknown prompt id {prompt_id!r}; expected one of {sorted(FALLBACK_PROMPTS)}")

        if self.base_url:
            try:
                template, version = self._fetch_remote(prompt_id, label or self.default_label)
                return PromptResult(
                    text=compile_prompt(template, variables),
                    source="remote",
                    version=version,
                    prompt_id=prompt_id,
                )
            except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
                logger.warning("Prompt service lookup for %s failed, using fallback: %s", prompt_id, exc)

        return self.resolve_fallback(prompt_id, variables)

    @staticmethod
    def resolve_fallback(prompt_id: str, variables: Optional[dict] = None) -> PromptResult:
        """Compiled-in prompt only; never touches the network."""
        return PromptResult(
            text=compile_prompt(FALLBACK_PROMPTS[prompt_id], variables),
            source="fallback",
            version=PROMPT_VERSION,
            prompt_id=prompt_id,
        )

    def _fetch_remote(self, prompt_id: str, label: str) -> "tuple[str, str]":
        response = self.session.get(
            f"{self.base_url}/prompts/{prompt_id}",
            params={"label": label},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        body: Any = response.json()
        template = body["prompt"]
        if not isinstance(template, str) or not template.strip():
            raise ValueError(f"prompt service returned an empty template for {prompt_id}")
        version = body.get("version")
        return template, str(version) if version is not None else "unknown"
