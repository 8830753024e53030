"""
Tests for event_generator.py.

The ModelClient is a MagicMock returning a ModelResult, so no provider is
involved.

Coverage:
  - derive_era / era_context / build_user_prompt
  - EventGenerator.generate → validation safety net, argument checks,
                              call metadata, error propagation
"""

import unittest
from unittest.mock import MagicMock

from chronology.generation.event_generator import (
    MAX_EVENTS_PER_CALL,
    MIN_EVENTS_PER_CALL,
    EventGenerator,
    build_user_prompt,
    derive_era,
    era_context,
)
from chronology.generation.model_client import (
    CostBreakdown,
    ModelResult,
    ProviderError,
    ResponseMetadata,
    TokenUsage,
)
from chronology.generation.schemas import CandidateEvent, GeneratorOutput

GOOD_TEXTS = [
    "Columbus reaches the Caribbean for the Spanish crown",
    "Granada surrenders to Ferdinand and Isabella",
    "Lorenzo de Medici dies in Florence",
    "Rodrigo Borgia becomes Pope Alexander",
    "Martin Behaim builds the Erdapfel globe in Nuremberg",
    "Spain expels its Jewish population under the Alhambra Decree",
]


def _event(text, difficulty=3, category="politics") -> CandidateEvent:
    return CandidateEvent(text=text, title="Some title", category=category,
                          difficulty=difficulty, region="Europe")


def _model_result(events, model="google/gemini-3-pro-preview", cache_hit=False) -> ModelResult:
    return ModelResult(
        data=GeneratorOutput(events=events),
        raw_text="{}",
        usage=TokenUsage(input_tokens=900, output_tokens=700, reasoning_tokens=300),
        cost=CostBreakdown(total_usd=0.0123),
        metadata=ResponseMetadata(model=model, cache_hit=cache_hit, latency_ms=1200, request_id="req-1"),
    )


class TestHelpers(unittest.TestCase):

    def test_derive_era(self):
        self.assertEqual(derive_era(1969), "CE")
        self.assertEqual(derive_era(1), "CE")
        self.assertEqual(derive_era(0), "BCE")
        self.assertEqual(derive_era(-44), "BCE")

    def test_era_context(self):
        self.assertIn("Ancient world", era_context(700, "BCE"))
        self.assertIn("Classical", era_context(400, "BCE"))
        self.assertIn("Hellenistic", era_context(44, "BCE"))
        self.assertIn("Early Roman Empire", era_context(64, "CE"))
        self.assertIn("Medieval", era_context(1066, "CE"))
        self.assertIn("Early modern", era_context(1648, "CE"))
        self.assertEqual(era_context(1969, "CE"), "")

    def test_user_prompt_uses_absolute_year(self):
        prompt = build_user_prompt(-44, "BCE", 12)
        self.assertTrue(prompt.startswith("Target year: 44 BCE"))
        self.assertIn("Generate 12 high-quality historical events from exactly 44 BCE.", prompt)
        self.assertNotIn("-44", prompt)

    def test_user_prompt_without_context(self):
        lines = build_user_prompt(1969, "CE", 10).splitlines()
        self.assertEqual(lines[0], "Target year: 1969 CE")
        self.assertEqual(lines[1], "")


class TestEventGenerator(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.generator = EventGenerator(self.client)

    def test_all_valid_events_survive(self):
        self.client.generate.return_value = _model_result([_event(t) for t in GOOD_TEXTS], cache_hit=True)

        result = self.generator.generate(1492, "CE", 10)

        self.assertEqual([e.text for e in result.events], GOOD_TEXTS)
        self.assertEqual(result.rejected, {})
        self.assertEqual(result.cost_usd, 0.0123)
        self.assertTrue(result.cache_hit)
        self.assertEqual(result.model, "google/gemini-3-pro-preview")
        self.assertEqual(result.prompt_source, "fallback")

    def test_safety_net_drops_invalid_events(self):
        leaky = "Columbus sails in 1492 for Castile"
        no_noun = "A ship sails across the ocean"
        events = [_event(t) for t in GOOD_TEXTS] + [_event(leaky), _event(no_noun)]
        self.client.generate.return_value = _model_result(events)

        result = self.generator.generate(1492, "CE", 12)

        self.assertEqual(len(result.events), 6)
        self.assertEqual(result.rejected[leaky], ["leakage"])
        self.assertEqual(result.rejected[no_noun], ["no_proper_noun"])

    def test_call_carries_schema_and_metadata(self):
        self.client.generate.return_value = _model_result([_event(t) for t in GOOD_TEXTS])

        self.generator.generate(-44, "BCE", 8)

        kwargs = self.client.generate.call_args.kwargs
        self.assertIs(kwargs["schema"], GeneratorOutput)
        self.assertEqual(kwargs["metadata"], {"stage": "event-generator", "year": -44, "era": "BCE"})
        self.assertIn("You are a historian", kwargs["system"])
        self.assertTrue(kwargs["user"].startswith("Target year: 44 BCE"))

    def test_rejects_bad_era(self):
        with self.assertRaises(ValueError):
            self.generator.generate(1492, "AD")
        self.client.generate.assert_not_called()

    def test_rejects_bad_count(self):
        for count in (0, 3, MIN_EVENTS_PER_CALL - 1, MAX_EVENTS_PER_CALL + 1):
            with self.subTest(count=count):
                with self.assertRaises(ValueError):
                    self.generator.generate(1492, "CE", count)
        self.client.generate.assert_not_called()

    def test_accepts_count_at_schema_bounds(self):
        self.client.generate.return_value = _model_result([_event(t) for t in GOOD_TEXTS])
        for count in (MIN_EVENTS_PER_CALL, MAX_EVENTS_PER_CALL):
            with self.subTest(count=count):
                self.generator.generate(1492, "CE", count)
                self.assertIn(f"Generate {count} high-quality", self.client.generate.call_args.kwargs["user"])

    def test_model_errors_propagate(self):
        self.client.generate.side_effect = ProviderError("down", status=503)
        with self.assertRaises(ProviderError):
            self.generator.generate(1492, "CE")

    def test_uses_injected_prompt_resolver(self):
        prompts = MagicMock()
        prompts.resolve.return_value = MagicMock(text="custom system", source="remote")
        self.client.generate.return_value = _model_result([_event(t) for t in GOOD_TEXTS])

        result = EventGenerator(self.client, prompts).generate(1492, "CE")

        prompts.resolve.assert_called_once_with("event-generator")
        self.assertEqual(self.client.generate.call_args.kwargs["system"], "custom system")
        self.assertEqual(result.prompt_source, "remote")


class TestCandidateEventSchema(unittest.TestCase):

    def test_fractional_difficulty_rounds_half_up(self):
        self.assertEqual(_event("Drake reaches California", difficulty=2.5).difficulty, 3)
        self.assertEqual(_event("Drake reaches California", difficulty=2.4).difficulty, 2)
        self.assertEqual(_event("Drake reaches California", difficulty=4.9).difficulty, 5)

    def test_out_of_range_difficulty_rejected_before_rounding(self):
        for difficulty in (0.5, 0.99, 5.4, 6.0):
            with self.subTest(difficulty=difficulty):
                with self.assertRaises(ValueError):
                    _event("Drake reaches California", difficulty=difficulty)

    def test_generator_output_bounds(self):
        with self.assertRaises(ValueError):
            GeneratorOutput(events=[_event(GOOD_TEXTS[0])] * 5)
        with self.assertRaises(ValueError):
            GeneratorOutput(events=[_event(GOOD_TEXTS[0])] * 13)


if __name__ == "__main__":
    unittest.main()
