"""
Batch Runner — drives event generation for many years at once.

Pipeline per year:

    derive era → EventGenerator.generate(year, era, 12)
              → enough survivors? (MIN_EVENTS_PER_YEAR)
              → sort by difficulty, keep MAX_EVENTS_TO_IMPORT
              → event_pool_service.import_year_events()

A batch runs every year concurrently on a thread pool. Each year's outcome
is independent: a model failure or a low-yield year is recorded in the
summary and never cancels its siblings.

Usage:
    python -m chronology.generation.batch_runner 1969 -44 1066
"""

import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from chronology.coverage.coverage_analysis import YearCoverageStat, select_work
from chronology.generation.event_generator import EventGenerator, derive_era
from chronology.generation.model_client import ModelClientError
from chronology.services import event_pool_service

logger = logging.getLogger(__name__)

MIN_REQUIRED_EVENTS = 6
MAX_EVENTS_TO_IMPORT = 10
REQUESTED_EVENTS = 12

MIN_TARGET_COUNT = 1
MAX_TARGET_COUNT = 50

ImportFn = Callable[[int, "list[str]"], dict]


@dataclass
class YearResult:
    year: int
    status: str  # "success" | "failed"
    reason: "str | None" = None  # "insufficient_events" | "generation_error"
    events_imported: int = 0
    events_generated: int = 0
    cost_usd: float = 0.0
    model: "str | None" = None
    cache_hit: bool = False
    error: "str | None" = None


@dataclass
class BatchSummary:
    years: "list[int]"
    successes: int
    failures: int
    failed_years: "list[int]"
    total_events: int
    total_cost_usd: float
    duration_ms: int
    results: "list[YearResult]" = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "years": self.years,
            "successes": self.successes,
            "failures": self.failures,
            "failed_years": self.failed_years,
            "total_events": self.total_events,
            "total_cost_usd": self.total_cost_usd,
            "duration_ms": self.duration_ms,
        }


def clamp_target_count(count: int) -> int:
    return max(MIN_TARGET_COUNT, min(MAX_TARGET_COUNT, count))


def run_year_generation(
    year: int,
    generator: EventGenerator,
    import_events: Optional[ImportFn] = None,
    min_events: int = MIN_REQUIRED_EVENTS,
    max_import: int = MAX_EVENTS_TO_IMPORT,
) -> YearResult:
    """Generates, filters and imports one year. Model failures become a failed YearResult."""
    import_events = import_events or event_pool_service.import_year_events
    era = derive_era(year)

    try:
        result = generator.generate(year, era, REQUESTED_EVENTS)
    except ModelClientError as exc:
        logger.error("[batch] year=%d era=%s stage=event-generator failed: %s", year, era, exc)
        return YearResult(year=year, status="failed", reason="generation_error", error=str(exc))

    if len(result.events) < min_events:
        logger.warning(
            "[batch] year=%d era=%s only %d events survived validation (need %d)",
            year, era, len(result.events), min_events,
        )
        return YearResult(
            year=year,
            status="failed",
            reason="insufficient_events",
            events_generated=len(result.events),
            cost_usd=result.cost_usd,
            model=result.model,
            cache_hit=result.cache_hit,
        )

    chosen = sorted(result.events, key=lambda event: event.difficulty)[:max_import]
    imported = import_events(year, [event.text for event in chosen])

    logger.info(
        "[batch] year=%d era=%s imported=%d model=%s cost_usd=%.6f cache_hit=%s",
        year, era, imported.get("created", len(chosen)), result.model, result.cost_usd, result.cache_hit,
    )
    return YearResult(
        year=year,
        status="success",
        events_imported=imported.get("created", len(chosen)),
        events_generated=len(result.events),
        cost_usd=result.cost_usd,
        model=result.model,
        cache_hit=result.cache_hit,
    )


def run_generation_batch(
    years: "list[int]",
    generator: EventGenerator,
    import_events: Optional[ImportFn] = None,
    max_workers: int = 8,
    min_events: int = MIN_REQUIRED_EVENTS,
    max_import: int = MAX_EVENTS_TO_IMPORT,
) -> BatchSummary:
    started = time.monotonic()
    results: "list[YearResult]" = []

    if years:
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(years)))) as pool:
            futures = [
                pool.submit(run_year_generation, year, generator, import_events, min_events, max_import)
                for year in years
            ]
            for year, future in zip(years, futures):
                try:
                    results.append(future.result())
                except Exception as exc:
                    # Import failures and other unexpected errors stay scoped to their year.
                    logger.exception("[batch] year=%d failed unexpectedly", year)
                    results.append(YearResult(year=year, status="failed", reason="generation_error",
                                              error=str(exc)))

    failed = [r.year for r in results if r.status != "success"]
    summary = BatchSummary(
        years=list(years),
        successes=len(results) - len(failed),
        failures=len(failed),
        failed_years=failed,
        total_events=sum(r.events_imported for r in results),
        total_cost_usd=round(sum(r.cost_usd for r in results), 6),
        duration_ms=int((time.monotonic() - started) * 1000),
        results=results,
    )
    logger.info(
        "[batch] completed years=%d successes=%d failures=%d failed_years=%s total_cost_usd=%.6f duration_ms=%d",
        len(summary.years), summary.successes, summary.failures, summary.failed_years,
        summary.total_cost_usd, summary.duration_ms,
    )
    return summary


def generate_daily_batch(
    target_count: int,
    generator: EventGenerator,
    settings=None,
    import_events: Optional[ImportFn] = None,
    load_year_stats: Optional[Callable[[], "list[dict]"]] = None,
) -> BatchSummary:
    """Picks target years from current coverage and runs a batch over them."""
    count = clamp_target_count(target_count)
    load_year_stats = load_year_stats or event_pool_service.get_all_years_with_stats
    min_events = settings.min_events_per_year if settings else MIN_REQUIRED_EVENTS
    max_import = settings.max_events_to_import if settings else MAX_EVENTS_TO_IMPORT
    max_workers = settings.batch_max_workers if settings else 8

    stats = [YearCoverageStat.from_row(row) for row in load_year_stats()]
    strategy = select_work(stats, count, min_events)
    logger.info(
        "[batch] coverage strategy years=%s priority=%s era_balance=%s",
        strategy.target_years, strategy.priority, strategy.era_balance,
    )

    return run_generation_batch(
        strategy.target_years,
        generator,
        import_events,
        max_workers=max_workers,
        min_events=min_events,
        max_import=max_import,
    )


# ---------------------------------------------------------------------------
# Smoke run: generate and import the years given on the command line.
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    from dotenv import load_dotenv

    from chronology.config import Settings
    from chronology.generation.providers import build_provider

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    settings = Settings.from_env()
    event_generator = EventGenerator.from_settings(settings, build_provider(settings))

    target_years = [int(arg) for arg in sys.argv[1:]]
    if target_years:
        batch = run_generation_batch(target_years, event_generator, max_workers=settings.batch_max_workers,
                                     min_events=settings.min_events_per_year,
                                     max_import=settings.max_events_to_import)
    else:
        batch = generate_daily_batch(10, event_generator, settings)

    for year_result in batch.results:
        print(f"{year_result.year:>6}  {year_result.status:<8} {year_result.reason or ''}"
              f"  imported={year_result.events_imported}  cost=${year_result.cost_usd:.4f}")
    print(f"Total: {batch.successes} ok, {batch.failures} failed, ${batch.total_cost_usd:.4f}")
