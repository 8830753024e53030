"""
Provider transports for the model client.

Each provider turns a ModelRequest into one HTTP round-trip and returns a
RawCompletion. Providers never retry and never parse JSON; they only map
transport failures to ProviderError with the right retryable flag.

  OpenRouterProvider  OpenAI-compatible chat completions over requests.
                      System-prompt caching is requested with the
                      X-Cache-Key / X-Cache-TTL / X-Cache-Enable headers and a
                      hit is read back from the x-openrouter-cache, x-cache or
                      x-cache-status response header.
  AnthropicProvider   Messages API via the anthropic SDK. Structured output is
                      a forced tool call whose input_schema is the pydantic
                      schema, and the system prompt carries cache_control.
"""

import json
import logging
from typing import Any

import anthropic
import requests

from chronology.generation.model_client import ModelRequest, ProviderError, RawCompletion

logger = logging.getLogger(__name__)

THINKING_BUDGETS = {"low": 256, "medium": 512, "high": 1024}

_CACHE_STATUS_HEADERS = ("x-openrouter-cache", "x-cache", "x-cache-status")

# Upper bound on how much of a provider error body ends up in logs.
_MAX_ERROR_BODY = 300


def _truncate(text: str) -> str:
    return text if len(text) <= _MAX_ERROR_BODY else text[:_MAX_ERROR_BODY] + "..."


# ---------------------------------------------------------------------------
# OpenRouter
# ---------------------------------------------------------------------------

class OpenRouterProvider:
    name = "openrouter"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout_seconds: float = 120.0,
        session: "requests.Session | None" = None,
    ) -> None:
        if not api_key:
            raise RuntimeError("OPENROUTER_API_KEY must be set to use the OpenRouter provider")
        self.api_key = api_key
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update({
            "HTTP-Referer": "https://chronology.app",
            "X-Title": "Chronology Event Pipeline",
        })

    def build_headers(self, request: ModelRequest) -> dict:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        if request.cache_system_prompt and request.cache_key:
            headers["X-Cache-Key"] = request.cache_key
            headers["X-Cache-TTL"] = str(request.cache_ttl_seconds)
            headers["X-Cache-Enable"] = "true"
        return headers

    def build_body(self, request: ModelRequest, model: str) -> dict:
        messages = [{"role": "system", "content": request.system_prompt}]
        if request.user_prompt:
            messages.append({"role": "user", "content": request.user_prompt})

        if request.schema is not None:
            response_format = {
                "type": "json_schema",
                "json_schema": {
                    "name": request.schema.__name__,
                    "strict": True,
                    "schema": request.schema.model_json_schema(),
                },
            }
        else:
            response_format = {"type": "json_object"}

        return {
            "model": model,
            "messages": messages,
            "temperature": request.temperature,
            "max_output_tokens": request.max_output_tokens,
            "reasoning": {
                "effort": request.thinking_level,
                "budget_tokens": THINKING_BUDGETS[request.thinking_level],
            },
            "response_format": response_format,
        }

    def complete(self, request: ModelRequest, model: str) -> RawCompletion:
        try:
            response = self.session.post(
                self.base_url,
                headers=self.build_headers(request),
                data=json.dumps(self.build_body(request, model)),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            # Connection resets, DNS failures and timeouts are all worth retrying.
            raise ProviderError(f"OpenRouter request failed: {exc}", status=None, retryable=True) from exc

        if not response.ok:
            logger.error(
                "OpenRouter HTTP %d for %s: %s", response.status_code, model, _truncate(response.text)
            )
            raise ProviderError(
                f"OpenRouter request failed ({response.status_code} {response.reason})",
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError("OpenRouter returned a non-JSON body", status=response.status_code,
                                retryable=True) from exc

        cache_status = next(
            (response.headers.get(h) for h in _CACHE_STATUS_HEADERS if response.headers.get(h)),
            None,
        )
        text, reasoning_text = extract_completion_text(payload)
        usage = payload.get("usage") or {}

        return RawCompletion(
            text=text,
            model=payload.get("model"),
            input_tokens=_first_int(usage, "prompt_tokens", "input_tokens"),
            output_tokens=_first_int(usage, "completion_tokens", "output_tokens"),
            reasoning_tokens=(
                _first_int(usage, "reasoning_tokens")
                if "reasoning_tokens" in usage
                else _first_int(usage.get("output_tokens_details") or {}, "reasoning_tokens")
            ),
            reasoning_text=reasoning_text,
            cache_hit=bool(cache_status and "hit" in cache_status.lower()),
            cache_status=cache_status,
        )


def _first_int(mapping: dict, *keys: str) -> "int | None":
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return int(value)
    return None


def extract_completion_text(payload: dict) -> "tuple[str, str | None]":
    """
    Pulls (content, reasoning) out of either the chat.completions shape or
    the responses-API output shape.

    Raises ProviderError when neither shape carries any content.
    """
    choices = payload.get("choices") or []
    message = choices[0].get("message") if choices else None
    if message:
        content = message.get("content")
        if isinstance(content, list):
            text = "".join(part.get("text") or "" for part in content)
        else:
            text = content if isinstance(content, str) else ""

        reasoning = message.get("reasoning_content")
        reasoning_text = (
            "\n".join(part.get("text") or "" for part in reasoning)
            if isinstance(reasoning, list)
            else None
        )
        if text:
            return text, reasoning_text

    output = payload.get("output")
    if isinstance(output, list):
        message_block = next((o for o in output if o.get("type") == "message"), None)
        reasoning_block = next((o for o in output if o.get("type") == "reasoning"), None)
        text = ""
        if message_block:
            text = next(
                (c.get("text") or "" for c in message_block.get("content") or []
                 if c.get("type") == "output_text"),
                "",
            )
        reasoning_text = "\n".join(reasoning_block.get("summary") or []) if reasoning_block else None
        if text:
            return text, reasoning_text

    if isinstance(payload.get("output_text"), str):
        return payload["output_text"], None

    raise ProviderError("No message content found in provider response", retryable=False)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------

_SUBMIT_TOOL_NAME = "submit_result"


class AnthropicProvider:
    name = "anthropic"

    def __init__(self, api_key: str, client: Any = None) -> None:
        if client is None:
            if not api_key:
                raise RuntimeError("ANTHROPIC_API_KEY must be set to use the Anthropic provider")
            client = anthropic.Anthropic(api_key=api_key)
        self.client = client

    def complete(self, request: ModelRequest, model: str) -> RawCompletion:
        system_block: dict = {"type": "text", "text": request.system_prompt}
        if request.cache_system_prompt:
            system_block["cache_control"] = {"type": "ephemeral"}

        kwargs: dict = {
            "model": model,
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "system": [system_block],
            "messages": [{"role": "user", "content": request.user_prompt or "Respond now."}],
        }
        if request.schema is not None:
            kwargs["tools"] = [{
                "name": _SUBMIT_TOOL_NAME,
                "description": "Submit the structured result. Call this tool exactly once.",
                "input_schema": request.schema.model_json_schema(),
            }]
            kwargs["tool_choice"] = {"type": "tool", "name": _SUBMIT_TOOL_NAME}

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIStatusError as exc:
            raise ProviderError(f"Anthropic API error: {exc}", status=exc.status_code) from exc
        except anthropic.APIConnectionError as exc:
            # APITimeoutError is a subclass, so timeouts land here too.
            raise ProviderError(f"Anthropic connection error: {exc}", retryable=True) from exc

        tool_block = next((b for b in response.content if b.type == "tool_use"), None)
        if tool_block is not None:
            text = json.dumps(tool_block.input)
        else:
            text = "".join(b.text for b in response.content if b.type == "text")

        usage = response.usage
        cache_read = getattr(usage, "cache_read_input_tokens", None) or 0
        return RawCompletion(
            text=text,
            model=getattr(response, "model", None),
            input_tokens=usage.input_tokens + cache_read,
            output_tokens=usage.output_tokens,
            reasoning_tokens=0,
            cache_hit=cache_read > 0,
            cache_status="hit" if cache_read > 0 else "miss",
        )


def build_provider(settings):
    """Returns the provider named by settings.llm_provider."""
    if settings.llm_provider == "openrouter":
        return OpenRouterProvider(settings.openrouter_api_key, settings.openrouter_base_url)
    if settings.llm_provider == "anthropic":
        return AnthropicProvider(settings.anthropic_api_key)
    raise ValueError(f"Unknown LLM_PROVIDER {settings.llm_provider!r}; expected 'openrouter' or 'anthropic'")
