"""
Tests for model_client.py.

The provider is a MagicMock whose complete() returns RawCompletion objects or
raises ProviderError, and sleep is a MagicMock, so the retry loop runs
instantly. jitter_ratio=0 makes every backoff delay exact.

Coverage:
  - build_cache_key / calculate_backoff_delay / compute_cost / extract_json_payload
  - ModelClient.generate → parsing, usage and cost, retry on 429/5xx, no retry
                           on 4xx or schema errors, fallback model, terminal failure
"""

import json
import unittest
from unittest.mock import MagicMock

from pydantic import BaseModel

from chronology.generation.model_client import (
    ModelClient,
    ProviderError,
    RawCompletion,
    SchemaValidationError,
    TokenUsage,
    build_cache_key,
    calculate_backoff_delay,
    compute_cost,
    extract_json_payload,
)


class _Answer(BaseModel):
    value: int
    items: list[str]


_GOOD_JSON = json.dumps({"value": 7, "items": ["a", "b"]})


def _completion(text=_GOOD_JSON, **overrides) -> RawCompletion:
    fields = {
        "text": text,
        "model": None,
        "input_tokens": 1000,
        "output_tokens": 500,
        "reasoning_tokens": 100,
        "cache_hit": False,
    }
    fields.update(overrides)
    return RawCompletion(**fields)


def _client(provider, **overrides) -> ModelClient:
    options = {
        "model": "google/gemini-3-pro-preview",
        "fallback_model": "openai/gpt-5-mini",
        "jitter_ratio": 0,
        "sleep": MagicMock(),
    }
    options.update(overrides)
    return ModelClient(provider, **options)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

class TestBuildCacheKey(unittest.TestCase):

    def test_same_inputs_same_key(self):
        self.assertEqual(build_cache_key("prompt", "stage"), build_cache_key("prompt", "stage"))

    def test_different_prompt_or_stage_changes_key(self):
        base = build_cache_key("prompt", "stage")
        self.assertNotEqual(base, build_cache_key("prompt!", "stage"))
        self.assertNotEqual(base, build_cache_key("prompt", "other"))

    def test_key_is_namespaced_by_stage(self):
        self.assertTrue(build_cache_key("p", "event-generator").startswith("chronology:event-generator:"))


class TestCalculateBackoffDelay(unittest.TestCase):

    def test_exponential_without_jitter(self):
        delays = [calculate_backoff_delay(a, 1.0, 15.0, 0) for a in range(4)]
        self.assertEqual(delays, [1.0, 2.0, 4.0, 8.0])

    def test_capped_at_max(self):
        self.assertEqual(calculate_backoff_delay(10, 1.0, 15.0, 0), 15.0)

    def test_jitter_stays_within_ratio(self):
        low = calculate_backoff_delay(1, 1.0, 15.0, 0.25, rand=lambda: 0.0)
        high = calculate_backoff_delay(1, 1.0, 15.0, 0.25, rand=lambda: 1.0)
        self.assertAlmostEqual(low, 1.5)
        self.assertAlmostEqual(high, 2.5)


class TestComputeCost(unittest.TestCase):

    def test_uncached_call(self):
        cost = compute_cost(TokenUsage(1_000_000, 1_000_000, 0), cache_hit=False)
        self.assertAlmostEqual(cost.input_usd, 2.0)
        self.assertAlmostEqual(cost.output_usd, 12.0)
        self.assertEqual(cost.cache_savings_usd, 0.0)
        self.assertAlmostEqual(cost.total_usd, 14.0)

    def test_cache_hit_bills_ten_percent_of_input(self):
        usage = TokenUsage(input_tokens=1000, output_tokens=500, reasoning_tokens=100)
        cost = compute_cost(usage, cache_hit=True)
        self.assertAlmostEqual(cost.input_usd, 0.0002)
        self.assertAlmostEqual(cost.output_usd, 0.006)
        # savings == uncached input price - cached input price
        self.assertAlmostEqual(cost.cache_savings_usd, 0.002 - 0.0002)
        self.assertAlmostEqual(cost.total_usd, 0.0062)

    def test_cached_input_tokens_round_up(self):
        cost = compute_cost(TokenUsage(input_tokens=15, output_tokens=0), cache_hit=True)
        # ceil(1.5) = 2 billed tokens
        self.assertAlmostEqual(cost.input_usd, round(2 / 1_000_000 * 2.0, 6))

    def test_known_model_uses_its_own_rates(self):
        cost = compute_cost(TokenUsage(1_000_000, 0), cache_hit=False, model="openai/gpt-5-mini")
        self.assertAlmostEqual(cost.input_usd, 0.25)


class TestExtractJsonPayload(unittest.TestCase):

    def test_plain_json(self):
        self.assertEqual(extract_json_payload('{"a": 1}'), {"a": 1})

    def test_code_fence(self):
        self.assertEqual(extract_json_payload('```json\n{"a": 1}\n```'), {"a": 1})

    def test_surrounding_prose(self):
        self.assertEqual(extract_json_payload('Sure! {"a": [1, 2]} Hope that helps.'), {"a": [1, 2]})

    def test_empty_raises(self):
        with self.assertRaises(ValueError):
            extract_json_payload("   ")

    def test_no_json_raises(self):
        with self.assertRaises(ValueError):
            extract_json_payload("no json here")


# ---------------------------------------------------------------------------
# ModelClient.generate
# ---------------------------------------------------------------------------

class TestModelClientGenerate(unittest.TestCase):

    def test_parses_and_accounts_for_usage(self):
        provider = MagicMock()
        provider.complete.return_value = _completion(cache_hit=True, cache_status="HIT")
        client = _client(provider)

        result = client.generate(system="You are structured", user="Return JSON", schema=_Answer,
                                 metadata={"stage": "generator"})

        self.assertIsInstance(result.data, _Answer)
        self.assertEqual(result.data.value, 7)
        self.assertEqual(result.usage.reasoning_tokens, 100)
        self.assertEqual(result.usage.total_tokens, 1600)
        self.assertTrue(result.metadata.cache_hit)
        self.assertEqual(result.metadata.cache_status, "HIT")
        self.assertEqual(result.metadata.model, "google/gemini-3-pro-preview")
        self.assertIsNone(result.metadata.fallback_from)
        self.assertEqual(result.metadata.cache_key, build_cache_key("You are structured", "generator"))
        self.assertGreater(result.cost.cache_savings_usd, 0)

    def test_request_carries_cache_key_and_profile(self):
        provider = MagicMock()
        provider.complete.return_value = _completion()
        client = _client(provider, thinking_level="high", temperature=0.7, stage="event-generator")

        client.generate(system="sys", user="usr", schema=_Answer)

        request, model = provider.complete.call_args[0]
        self.assertEqual(model, "google/gemini-3-pro-preview")
        self.assertEqual(request.thinking_level, "high")
        self.assertEqual(request.temperature, 0.7)
        self.assertEqual(request.cache_key, build_cache_key("sys", "event-generator"))
        self.assertIs(request.schema, _Answer)

    def test_cache_disabled_means_no_key_and_no_hit(self):
        provider = MagicMock()
        provider.complete.return_value = _completion(cache_hit=True)
        client = _client(provider, cache_system_prompt=False)

        result = client.generate(system="sys", schema=_Answer)

        self.assertIsNone(provider.complete.call_args[0][0].cache_key)
        self.assertFalse(result.metadata.cache_hit)

    def test_retries_rate_limit_then_succeeds(self):
        provider = MagicMock()
        provider.complete.side_effect = [ProviderError("rate limited", status=429), _completion()]
        sleep = MagicMock()
        client = _client(provider, sleep=sleep)

        result = client.generate(system="sys", schema=_Answer)

        self.assertEqual(result.data.value, 7)
        self.assertEqual(provider.complete.call_count, 2)
        sleep.assert_called_once_with(1.0)

    def test_backoff_doubles_across_server_errors(self):
        provider = MagicMock()
        provider.complete.side_effect = [
            ProviderError("boom", status=503),
            ProviderError("boom", status=500),
            _completion(),
        ]
        sleep = MagicMock()
        client = _client(provider, sleep=sleep)

        client.generate(system="sys", schema=_Answer)

        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1.0, 2.0])

    def test_client_error_is_not_retried_but_falls_back(self):
        provider = MagicMock()
        provider.complete.side_effect = [ProviderError("bad request", status=400), _completion()]
        sleep = MagicMock()
        client = _client(provider, sleep=sleep)

        result = client.generate(system="sys", schema=_Answer)

        sleep.assert_not_called()
        models = [c.args[1] for c in provider.complete.call_args_list]
        self.assertEqual(models, ["google/gemini-3-pro-preview", "openai/gpt-5-mini"])
        self.assertEqual(result.metadata.fallback_from, "google/gemini-3-pro-preview")

    def test_fallback_after_primary_exhausted(self):
        provider = MagicMock()
        provider.complete.side_effect = [ProviderError("down", status=502)] * 3 + [
            _completion(model="openai/gpt-5-mini")
        ]
        client = _client(provider)

        result = client.generate(system="sys", schema=_Answer)

        self.assertEqual(provider.complete.call_count, 4)
        self.assertEqual(result.metadata.model, "openai/gpt-5-mini")
        self.assertEqual(result.metadata.fallback_from, "google/gemini-3-pro-preview")

    def test_raises_when_primary_and_fallback_fail(self):
        provider = MagicMock()
        provider.complete.side_effect = ProviderError("down", status=500)
        client = _client(provider, max_attempts=2)

        with self.assertRaises(ProviderError):
            client.generate(system="sys", schema=_Answer)
        # two attempts on each model
        self.assertEqual(provider.complete.call_count, 4)

    def test_no_fallback_configured_raises_after_retries(self):
        provider = MagicMock()
        provider.complete.side_effect = ProviderError("down", status=500)
        client = _client(provider, fallback_model=None)

        with self.assertRaises(ProviderError):
            client.generate(system="sys", schema=_Answer)
        self.assertEqual(provider.complete.call_count, 3)

    def test_connection_errors_are_retried(self):
        provider = MagicMock()
        provider.complete.side_effect = [ProviderError("reset", retryable=True), _completion()]
        client = _client(provider, fallback_model=None)

        client.generate(system="sys", schema=_Answer)
        self.assertEqual(provider.complete.call_count, 2)

    def test_schema_violation_is_not_retried_on_same_model(self):
        provider = MagicMock()
        provider.complete.side_effect = [
            _completion(text=json.dumps({"value": "seven"})),
            _completion(),
        ]
        client = _client(provider)

        result = client.generate(system="sys", schema=_Answer)

        models = [c.args[1] for c in provider.complete.call_args_list]
        self.assertEqual(models, ["google/gemini-3-pro-preview", "openai/gpt-5-mini"])
        self.assertEqual(result.data.value, 7)

    def test_schema_violation_without_fallback_raises(self):
        provider = MagicMock()
        provider.complete.return_value = _completion(text="not json at all")
        client = _client(provider, fallback_model=None)

        with self.assertRaises(SchemaValidationError):
            client.generate(system="sys", schema=_Answer)
        self.assertEqual(provider.complete.call_count, 1)

    def test_missing_usage_is_estimated(self):
        provider = MagicMock()
        provider.complete.return_value = _completion(
            input_tokens=None, output_tokens=None, reasoning_tokens=None
        )
        client = _client(provider)

        result = client.generate(system="a" * 40, user="b" * 40, schema=_Answer)

        self.assertEqual(result.usage.input_tokens, 21)  # ceil(81 / 4)
        self.assertEqual(result.usage.output_tokens, -(-len(_GOOD_JSON) // 4))
        self.assertEqual(result.usage.reasoning_tokens, 0)

    def test_without_schema_returns_raw_text(self):
        provider = MagicMock()
        provider.complete.return_value = _completion(text="plain answer")
        client = _client(provider)

        self.assertEqual(client.generate(system="sys").data, "plain answer")

    def test_empty_system_prompt_raises(self):
        client = _client(MagicMock())
        with self.assertRaises(ValueError):
            client.generate(system="   ")

    def test_rejects_unknown_thinking_level(self):
        with self.assertRaises(ValueError):
            _client(MagicMock(), thinking_level="extreme")


if __name__ == "__main__":
    unittest.main()
