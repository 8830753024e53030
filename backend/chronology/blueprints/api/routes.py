"""
HTTP interface for Order mode and pipeline administration.

Endpoints:
- POST /order/evaluate:  Scores one ordering against a puzzle's stored years.
- POST /order/submit:    Re-verifies and records a completed play (auth).
- GET  /order/plays:     Lists the caller's completed plays (auth).
- GET  /admin/coverage:  Coverage gaps and puzzle demand for the event pool (admin).
- POST /admin/generate:  Runs a generation batch for given years or by coverage (admin).

Request and response bodies use camelCase keys.
"""

from flask import Blueprint, current_app, g, request

from chronology.auth.middleware import require_admin, require_auth
from chronology.coverage.coverage_analysis import (
    YearCoverageStat,
    analyze_coverage_gaps,
    analyze_puzzle_demand,
)
from chronology.game.order_scoring import OrderValidationError, evaluate_ordering, is_solved, verify_submission
from chronology.generation.batch_runner import (
    MAX_TARGET_COUNT,
    generate_daily_batch,
    run_generation_batch,
)
from chronology.generation.event_generator import EventGenerator
from chronology.generation.providers import build_provider
from chronology.services import event_pool_service, order_play_service
from chronology.services.utils import create_response, parse_and_validate_request

api_bp = Blueprint("chronology", __name__)


def _attempt_to_json(attempt) -> dict:
    return {
        "ordering": attempt.ordering,
        "feedback": attempt.feedback,
        "pairsCorrect": attempt.pairs_correct,
        "totalPairs": attempt.total_pairs,
        "solved": is_solved(attempt),
    }


def _attempt_from_json(payload: dict) -> dict:
    return {
        "ordering": payload.get("ordering"),
        "feedback": payload.get("feedback"),
        "pairs_correct": payload.get("pairsCorrect"),
        "total_pairs": payload.get("totalPairs"),
    }


def _is_id_list(value) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_attempt(payload) -> bool:
    return (
        isinstance(payload, dict)
        and _is_id_list(payload.get("ordering"))
        and _is_id_list(payload.get("feedback"))
        and _is_count(payload.get("pairsCorrect"))
        and _is_count(payload.get("totalPairs"))
    )


def _load_puzzle(puzzle_id):
    try:
        return order_play_service.get_order_puzzle(puzzle_id), None
    except order_play_service.OrderPuzzleNotFoundError:
        return None, create_response(error="Order puzzle not found.", status_code=404)


def _get_generator() -> EventGenerator:
    """One EventGenerator per app, built on first use from the app's Settings."""
    generator = current_app.extensions.get("event_generator")
    if generator is None:
        settings = current_app.config["SETTINGS"]
        generator = EventGenerator.from_settings(settings, build_provider(settings))
        current_app.extensions["event_generator"] = generator
    return generator


@api_bp.route("/order/evaluate", methods=["POST"])
def evaluate_order():
    """
    Scores a single ordering. Feedback is always recomputed from the stored
    event years, so the response is safe to show as authoritative.
    """
    data, error = parse_and_validate_request(["puzzleId", "ordering"])
    if error:
        return create_response(error=error, status_code=400)
    if not _is_id_list(data["ordering"]):
        return create_response(error="ordering must be a list of event ids.", status_code=400)

    puzzle, not_found = _load_puzzle(data["puzzleId"])
    if not_found:
        return not_found

    attempt = evaluate_ordering(data["ordering"], puzzle["events"])
    return create_response(data=_attempt_to_json(attempt))


@api_bp.route("/order/submit", methods=["POST"])
@require_auth
def submit_order():
    """
    Records a completed play after re-verifying every attempt server-side.
    Rejected submissions return 422 and are not stored.
    """
    data, error = parse_and_validate_request(["puzzleId", "ordering", "attempts", "score"])
    if error:
        return create_response(error=error, status_code=400)

    attempts = data["attempts"]
    score = data["score"]
    if not _is_id_list(data["ordering"]) or not isinstance(attempts, list) \
            or not all(_is_attempt(a) for a in attempts) or not isinstance(score, dict):
        return create_response(error="Malformed submission.", status_code=400)

    puzzle, not_found = _load_puzzle(data["puzzleId"])
    if not_found:
        return not_found

    try:
        verified = verify_submission(
            data["ordering"],
            [_attempt_from_json(a) for a in attempts],
            puzzle["events"],
            score.get("attempts"),
        )
    except OrderValidationError as e:
        return create_response(error=str(e), status_code=422)

    order_play_service.record_order_play(
        g.user_id,
        puzzle["id"],
        data["ordering"],
        [_attempt_to_json(a) for a in verified],
        {"attempts": len(verified)},
    )
    return create_response(data={"puzzleId": puzzle["id"], "attempts": len(verified)}, status_code=201)


@api_bp.route("/order/plays", methods=["GET"])
@require_auth
def completed_plays():
    plays = order_play_service.get_completed_plays(g.user_id)
    return create_response(data={"plays": plays})


@api_bp.route("/admin/coverage", methods=["GET"])
@require_admin
def coverage_report():
    stats = [YearCoverageStat.from_row(row) for row in event_pool_service.get_all_years_with_stats()]
    settings = current_app.config["SETTINGS"]
    gaps = analyze_coverage_gaps(stats, settings.min_events_per_year)
    demand = analyze_puzzle_demand(event_pool_service.get_puzzle_target_years())

    return create_response(data={
        "yearsWithEvents": len(stats),
        "missingYearCount": len(gaps.missing_years),
        "insufficientYears": gaps.insufficient_years,
        "coverageByEra": gaps.coverage_by_era,
        "highDemandYears": demand.high_demand_years,
        "demandByEra": demand.demand_by_era,
    })


@api_bp.route("/admin/generate", methods=["POST"])
@require_admin
def generate_events():
    """
    Body: {"years": [int, ...]} to target specific years, or {"count": int}
    to let coverage analysis choose (clamped to 1..50).
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return create_response(error="Request body must be a JSON object.", status_code=400)

    settings = current_app.config["SETTINGS"]
    years = data.get("years")
    if years is not None:
        if not isinstance(years, list) or not years or len(years) > MAX_TARGET_COUNT \
                or not all(isinstance(y, int) and not isinstance(y, bool) for y in years):
            return create_response(
                error=f"years must be a list of 1 to {MAX_TARGET_COUNT} integers.", status_code=400
            )
        summary = run_generation_batch(
            years,
            _get_generator(),
            max_workers=settings.batch_max_workers,
            min_events=settings.min_events_per_year,
            max_import=settings.max_events_to_import,
        )
    else:
        count = data.get("count", 10)
        if not isinstance(count, int) or isinstance(count, bool):
            return create_response(error="count must be an integer.", status_code=400)
        summary = generate_daily_batch(count, _get_generator(), settings)

    return create_response(data=summary.to_dict())
