"""
Model Client — the single entry point for structured LLM calls.

Turns a (system prompt, user prompt, output schema) triple into a
schema-validated result, hiding retry/backoff, provider fallback, response
parsing, and cost accounting from every caller.

Flow for one generate() call:

  1. Build a deterministic cache key from (system prompt, stage) so the
     provider can reuse the processed system prompt across calls.
  2. Send the request to the primary model. Retryable failures (HTTP 429,
     5xx, connection errors) sleep base * 2^attempt (jittered) and retry,
     up to max_attempts.
  3. If the primary model fails for any reason, reissue the request against
     the fallback model with its own attempt budget.
  4. Parse the content as JSON and validate it against the pydantic schema.
     A schema violation is a SchemaValidationError and is never retried on
     the same model.
  5. Price the call. A cache hit bills input tokens at 10% of the uncached
     rate and reports the difference as cache_savings_usd.

The client is explicitly constructed and owned by its caller; the sleep
function and jitter ratio are constructor arguments so tests can run the
retry loop instantly and deterministically.

Usage:
    from chronology.generation.model_client import ModelClient
    from chronology.generation.providers import build_provider

    client = ModelClient(build_provider(settings), model="google/gemini-3-pro-preview",
                         fallback_model="openai/gpt-5-mini", stage="event-generator")
    result = client.generate(system=SYSTEM_PROMPT, user=user_prompt, schema=GeneratorOutput)
    result.data        # GeneratorOutput instance
    result.cost.total_usd
"""

import hashlib
import json
import logging
import math
import random
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pricing
#
# USD per 1M tokens as (input, output, reasoning). Reasoning tokens are billed
# by the provider inside output for most models, so the reasoning rate is 0
# unless a model is known to bill them separately.
# ---------------------------------------------------------------------------
DEFAULT_PRICING = (2.0, 12.0, 0.0)

MODEL_PRICING = {
    "google/gemini-3-pro-preview": (2.0, 12.0, 0.0),
    "google/gemini-3-flash-preview": (0.5, 3.0, 0.0),
    "openai/gpt-5-mini": (0.25, 2.0, 0.0),
    "claude-sonnet-4-5-20250929": (3.0, 15.0, 0.0),
}

# Share of the uncached input price billed when the system prompt is served
# from the provider cache.
CACHED_INPUT_RATE = 0.1

_COST_PRECISION = 6

THINKING_LEVELS = ("low", "medium", "high")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ModelClientError(Exception):
    """Base class for every failure surfaced by the model client."""


class ProviderError(ModelClientError):
    """
    Transport-level failure reported by a provider.

    status is the HTTP status when one was received, or None for connection
    errors and timeouts. When retryable is not given it is derived from the
    status: 429 and 5xx retry, other statuses do not.
    """

    def __init__(self, message: str, status: "int | None" = None, retryable: "bool | None" = None):
        super().__init__(message)
        self.status = status
        if retryable is None:
            retryable = is_retryable_status(status)
        self.retryable = retryable


class SchemaValidationError(ModelClientError):
    """The model answered, but its content did not match the requested schema."""


def is_retryable_status(status: "int | None") -> bool:
    if status is None:
        return False
    return status == 429 or status >= 500


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0
    reasoning_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens + self.reasoning_tokens

    def to_dict(self) -> dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "reasoning_tokens": self.reasoning_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass
class CostBreakdown:
    input_usd: float = 0.0
    output_usd: float = 0.0
    reasoning_usd: float = 0.0
    cache_savings_usd: float = 0.0
    total_usd: float = 0.0

    def to_dict(self) -> dict:
        return {
            "input_usd": self.input_usd,
            "output_usd": self.output_usd,
            "reasoning_usd": self.reasoning_usd,
            "cache_savings_usd": self.cache_savings_usd,
            "total_usd": self.total_usd,
        }


@dataclass
class ResponseMetadata:
    model: str
    cache_hit: bool
    latency_ms: int
    request_id: str
    cache_key: "str | None" = None
    cache_status: "str | None" = None
    fallback_from: "str | None" = None


@dataclass
class ModelResult:
    data: Any
    raw_text: str
    usage: TokenUsage
    cost: CostBreakdown
    metadata: ResponseMetadata


@dataclass
class ModelRequest:
    """Provider-agnostic description of one structured-generation request."""

    system_prompt: str
    user_prompt: str
    schema: "type[BaseModel] | None"
    stage: str
    temperature: float
    max_output_tokens: int
    thinking_level: str
    cache_system_prompt: bool
    cache_ttl_seconds: int
    cache_key: "str | None" = None
    metadata: dict = field(default_factory=dict)


@dataclass
class RawCompletion:
    """
    What a provider hands back before parsing. Token counts are None when
    the provider did not report them; the client estimates them instead.
    """

    text: str
    model: "str | None" = None
    input_tokens: "int | None" = None
    output_tokens: "int | None" = None
    reasoning_tokens: "int | None" = None
    reasoning_text: "str | None" = None
    cache_hit: bool = False
    cache_status: "str | None" = None


class Provider(Protocol):
    name: str

    def complete(self, request: ModelRequest, model: str) -> RawCompletion:
        ...


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def build_cache_key(system_prompt: str, stage: "str | None" = None) -> str:
    """
    Deterministic provider cache key for a system prompt within a stage.

    The prompt is reduced to a SHA-256 digest, so equal inputs always share
    a key and distinct inputs collide only with negligible probability.
    """
    namespace = stage or "default"
    digest = hashlib.sha256(system_prompt.encode("utf-8")).hexdigest()
    return f"chronology:{namespace}:{digest}"


def calculate_backoff_delay(
    attempt: int,
    base_seconds: float,
    max_seconds: float,
    jitter_ratio: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """base * 2^attempt, scaled by a jitter factor in [1 - ratio, 1 + ratio], capped."""
    exponential = base_seconds * (2 ** attempt)
    jitter = 1 + (rand() * 2 - 1) * jitter_ratio if jitter_ratio else 1.0
    return min(exponential * jitter, max_seconds)


def estimate_tokens(text: str) -> int:
    return max(1, math.ceil(len(text) / 4))


def compute_cost(usage: TokenUsage, cache_hit: bool, model: "str | None" = None) -> CostBreakdown:
    """
    Prices one call from its token usage.

    On a cache hit the billed input tokens drop to ceil(10%) of the reported
    count; cache_savings_usd is exactly the uncached input price minus the
    cached input price.
    """
    input_rate, output_rate, reasoning_rate = MODEL_PRICING.get(model or "", DEFAULT_PRICING)

    billed_input = math.ceil(usage.input_tokens * CACHED_INPUT_RATE) if cache_hit else usage.input_tokens
    input_usd = round(billed_input / 1_000_000 * input_rate, _COST_PRECISION)
    uncached_input_usd = round(usage.input_tokens / 1_000_000 * input_rate, _COST_PRECISION)
    output_usd = round(usage.output_tokens / 1_000_000 * output_rate, _COST_PRECISION)
    reasoning_usd = round(usage.reasoning_tokens / 1_000_000 * reasoning_rate, _COST_PRECISION)

    return CostBreakdown(
        input_usd=input_usd,
        output_usd=output_usd,
        reasoning_usd=reasoning_usd,
        cache_savings_usd=round(uncached_input_usd - input_usd, _COST_PRECISION) if cache_hit else 0.0,
        total_usd=round(input_usd + output_usd + reasoning_usd, _COST_PRECISION),
    )


_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def extract_json_payload(text: str) -> Any:
    """
    Parses model content as JSON, tolerating code fences and surrounding prose.

    Raises json.JSONDecodeError (or ValueError for empty content) when no
    JSON value can be recovered.
    """
    trimmed = text.strip()
    if not trimmed:
        raise ValueError("LLM response was empty")

    fenced = _FENCED_JSON.search(trimmed)
    if fenced and fenced.group(1).strip():
        return json.loads(fenced.group(1).strip())

    try:
        return json.loads(trimmed)
    except json.JSONDecodeError:
        for opener, closer in (("{", "}"), ("[", "]")):
            start, end = trimmed.find(opener), trimmed.rfind(closer)
            if start != -1 and end > start:
                return json.loads(trimmed[start:end + 1])
        raise


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class ModelClient:
    """
    Structured-generation client with retry, fallback, and cost accounting.

    Args:
        provider:              Transport implementing complete(request, model).
        model:                 Primary model id.
        fallback_model:        Model tried after the primary is exhausted; None
                               (or the same id as model) disables fallback.
        stage:                 Tag used in the cache key and in log lines.
        max_attempts:          Attempts against the primary model.
        fallback_max_attempts: Attempts against the fallback (defaults to
                               max_attempts).
        sleep:                 Called with the backoff delay in seconds.
        jitter_ratio:          0 makes backoff delays fully deterministic.
    """

    def __init__(
        self,
        provider: Provider,
        model: str,
        fallback_model: "str | None" = None,
        *,
        stage: str = "default",
        temperature: float = 0.35,
        max_output_tokens: int = 6_000,
        thinking_level: str = "medium",
        cache_system_prompt: bool = True,
        cache_ttl_seconds: int = 86_400,
        max_attempts: int = 3,
        fallback_max_attempts: "int | None" = None,
        backoff_base_seconds: float = 1.0,
        max_backoff_seconds: float = 15.0,
        jitter_ratio: float = 0.25,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        if thinking_level not in THINKING_LEVELS:
            raise ValueError(f"thinking_level must be one of {THINKING_LEVELS}, got {thinking_level!r}")

        self.provider = provider
        self.model = model
        self.fallback_model = fallback_model
        self.stage = stage
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self.thinking_level = thinking_level
        self.cache_system_prompt = cache_system_prompt
        self.cache_ttl_seconds = cache_ttl_seconds
        self.max_attempts = max_attempts
        self.fallback_max_attempts = fallback_max_attempts or max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.jitter_ratio = jitter_ratio
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings, provider: Provider, **overrides) -> "ModelClient":
        """Builds a client whose retry/backoff policy comes from Settings."""
        options = {
            "model": settings.generator_model,
            "fallback_model": settings.generator_fallback_model,
            "max_attempts": settings.max_attempts,
            "backoff_base_seconds": settings.backoff_base_seconds,
            "max_backoff_seconds": settings.max_backoff_seconds,
            "jitter_ratio": settings.jitter_ratio,
            "cache_ttl_seconds": settings.cache_ttl_seconds,
        }
        options.update(overrides)
        return cls(provider, **options)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        system: str,
        user: str = "",
        schema: "type[BaseModel] | None" = None,
        metadata: Optional[dict] = None,
    ) -> ModelResult:
        """
        Issues one structured-generation request.

        Returns a ModelResult whose data is a schema instance (or the raw text
        when schema is None).

        Raises:
            ValueError:            Empty system prompt.
            ProviderError:         Transport failure on primary and fallback.
            SchemaValidationError: Malformed output on primary and fallback.
        """
        system_prompt = (system or "").strip()
        if not system_prompt:
            raise ValueError("system prompt is required")

        metadata = dict(metadata or {})
        stage = str(metadata.get("stage") or self.stage)
        request_id = str(metadata.get("request_id") or uuid.uuid4())

        request = ModelRequest(
            system_prompt=system_prompt,
            user_prompt=user or "",
            schema=schema,
            stage=stage,
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            thinking_level=self.thinking_level,
            cache_system_prompt=self.cache_system_prompt,
            cache_ttl_seconds=self.cache_ttl_seconds,
            cache_key=build_cache_key(system_prompt, stage) if self.cache_system_prompt else None,
            metadata=metadata,
        )

        try:
            return self._execute_with_retry(request, self.model, request_id, self.max_attempts)
        except ModelClientError as exc:
            logger.error("[%s] %s primary model %s failed: %s", stage, request_id, self.model, exc)
            if not self.fallback_model or self.fallback_model == self.model:
                raise

        logger.warning("[%s] %s falling back to %s", stage, request_id, self.fallback_model)
        return self._execute_with_retry(
            request,
            self.fallback_model,
            request_id,
            self.fallback_max_attempts,
            fallback_from=self.model,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute_with_retry(
        self,
        request: ModelRequest,
        model: str,
        request_id: str,
        max_attempts: int,
        fallback_from: "str | None" = None,
    ) -> ModelResult:
        last_error: "ModelClientError | None" = None

        for attempt in range(max_attempts):
            try:
                return self._execute_once(request, model, request_id, fallback_from)
            except SchemaValidationError as exc:
                # Never retried on the same model.
                logger.error(
                    "[%s] %s schema validation failed on %s (attempt %d/%d): %s",
                    request.stage, request_id, model, attempt + 1, max_attempts, exc,
                )
                raise
            except ProviderError as exc:
                last_error = exc
                if not exc.retryable or attempt == max_attempts - 1:
                    logger.error(
                        "[%s] %s attempt %d/%d on %s failed (status=%s), giving up: %s",
                        request.stage, request_id, attempt + 1, max_attempts, model, exc.status, exc,
                    )
                    raise

                delay = calculate_backoff_delay(
                    attempt,
                    self.backoff_base_seconds,
                    self.max_backoff_seconds,
                    self.jitter_ratio,
                )
                logger.warning(
                    "[%s] %s attempt %d/%d on %s failed (status=%s), retrying in %.2fs: %s",
                    request.stage, request_id, attempt + 1, max_attempts, model, exc.status, delay, exc,
                )
                self._sleep(delay)

        raise last_error or ModelClientError(f"{model} request failed")

    def _execute_once(
        self,
        request: ModelRequest,
        model: str,
        request_id: str,
        fallback_from: "str | None",
    ) -> ModelResult:
        logger.info(
            "[%s] %s calling %s cache_key=%s",
            request.stage, request_id, model, request.cache_key or "none",
        )
        started = time.monotonic()
        completion = self.provider.complete(request, model)
        latency_ms = int((time.monotonic() - started) * 1000)

        data = self._parse(completion.text, request.schema)
        cache_hit = completion.cache_hit if request.cache_system_prompt else False
        resolved_model = completion.model or model
        usage = TokenUsage(
            input_tokens=(
                completion.input_tokens
                if completion.input_tokens is not None
                else estimate_tokens(f"{request.system_prompt}\n{request.user_prompt}")
            ),
            output_tokens=(
                completion.output_tokens
                if completion.output_tokens is not None
                else estimate_tokens(completion.text)
            ),
            reasoning_tokens=(
                completion.reasoning_tokens
                if completion.reasoning_tokens is not None
                else (estimate_tokens(completion.reasoning_text) if completion.reasoning_text else 0)
            ),
        )
        cost = compute_cost(usage, cache_hit, model)

        logger.info(
            "[%s] %s %s ok latency_ms=%d tokens=%d cost_usd=%.6f cache_hit=%s",
            request.stage, request_id, resolved_model, latency_ms,
            usage.total_tokens, cost.total_usd, cache_hit,
        )

        return ModelResult(
            data=data,
            raw_text=completion.text,
            usage=usage,
            cost=cost,
            metadata=ResponseMetadata(
                model=resolved_model,
                cache_hit=cache_hit,
                latency_ms=latency_ms,
                request_id=request_id,
                cache_key=request.cache_key,
                cache_status=completion.cache_status,
                fallback_from=fallback_from,
            ),
        )

    @staticmethod
    def _parse(text: str, schema: "type[BaseModel] | None") -> Any:
        if schema is None:
            return text
        try:
            payload = extract_json_payload(text)
        except ValueError as exc:
            # json.JSONDecodeError is a ValueError subclass.
            raise SchemaValidationError(f"response is not valid JSON: {exc}") from exc
        try:
            return schema.model_validate(payload)
        except ValidationError as exc:
            raise SchemaValidationError(
                f"response does not match {schema.__name__}: {exc.error_count()} error(s)"
            ) from exc
