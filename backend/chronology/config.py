"""
Runtime configuration for the event-generation pipeline and API.

All values come from environment variables. Entrypoints (create_app, the
batch runner smoke test) call load_dotenv() first so backend/.env is picked
up during local development; nothing here reads the environment at import
time, which keeps tests free to patch os.environ.

Usage:
    from chronology.config import Settings

    settings = Settings.from_env()
    settings.generator_model   # "google/gemini-3-pro-preview"
"""

import os
from dataclasses import dataclass, field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw not in (None, "") else default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw not in (None, "") else default


def _env_list(name: str) -> "list[str]":
    raw = os.getenv(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    """Snapshot of every tunable the pipeline reads from the environment."""

    llm_provider: str = "openrouter"
    openrouter_api_key: "str | None" = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    anthropic_api_key: "str | None" = None

    generator_model: str = "google/gemini-3-pro-preview"
    generator_fallback_model: str = "openai/gpt-5-mini"
    judge_model: str = "google/gemini-3-flash-preview"

    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    max_backoff_seconds: float = 15.0
    jitter_ratio: float = 0.25
    cache_ttl_seconds: int = 86_400

    prompt_service_url: "str | None" = None
    prompt_service_timeout_seconds: float = 3.0
    prompt_label: str = "latest"

    min_events_per_year: int = 6
    max_events_to_import: int = 10
    batch_max_workers: int = 8

    auth_jwt_secret: "str | None" = None
    auth_jwt_audience: "str | None" = None
    admin_user_ids: "list[str]" = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds Settings from the current process environment."""
        defaults = cls()
        return cls(
            llm_provider=os.getenv("LLM_PROVIDER", defaults.llm_provider).lower(),
            openrouter_api_key=os.getenv("OPENROUTER_API_KEY"),
            openrouter_base_url=os.getenv("OPENROUTER_BASE_URL", defaults.openrouter_base_url),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY"),
            generator_model=os.getenv("GENERATOR_MODEL", defaults.generator_model),
            generator_fallback_model=os.getenv(
                "GENERATOR_FALLBACK_MODEL", defaults.generator_fallback_model
            ),
            judge_model=os.getenv("JUDGE_MODEL", defaults.judge_model),
            max_attempts=_env_int("LLM_MAX_ATTEMPTS", defaults.max_attempts),
            backoff_base_seconds=_env_float(
                "LLM_BACKOFF_BASE_SECONDS", defaults.backoff_base_seconds
            ),
            max_backoff_seconds=_env_float("LLM_MAX_BACKOFF_SECONDS", defaults.max_backoff_seconds),
            jitter_ratio=_env_float("LLM_JITTER_RATIO", defaults.jitter_ratio),
            cache_ttl_seconds=_env_int("LLM_CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
            prompt_service_url=os.getenv("PROMPT_SERVICE_URL") or None,
            prompt_service_timeout_seconds=_env_float(
                "PROMPT_SERVICE_TIMEOUT_SECONDS", defaults.prompt_service_timeout_seconds
            ),
            prompt_label=os.getenv("PROMPT_LABEL", defaults.prompt_label),
            min_events_per_year=_env_int("MIN_EVENTS_PER_YEAR", defaults.min_events_per_year),
            max_events_to_import=_env_int("MAX_EVENTS_TO_IMPORT", defaults.max_events_to_import),
            batch_max_workers=_env_int("BATCH_MAX_WORKERS", defaults.batch_max_workers),
            auth_jwt_secret=os.getenv("AUTH_JWT_SECRET"),
            auth_jwt_audience=os.getenv("AUTH_JWT_AUDIENCE") or None,
            admin_user_ids=_env_list("ADMIN_USER_IDS"),
        )
