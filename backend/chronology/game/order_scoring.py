"""
Order mode scoring: server-authoritative evaluation of a player's ordering.

Ground truth is always re-derived from the stored event years; nothing the
client sends about feedback or scores is trusted. The scoring functions
accept arbitrary client orderings (unknown ids, repeats, wrong length) and
score the bad parts as incorrect instead of raising. verify_submission() is
the one place that raises, because a submission that fails verification
must not be recorded.

Usage:
    from chronology.game.order_scoring import evaluate_ordering, is_solved

    attempt = evaluate_ordering(["a", "c", "b", "d"], puzzle_events)
    attempt.feedback        # ["correct", "incorrect", "incorrect", "correct"]
    attempt.pairs_correct   # 5 of attempt.total_pairs == 6
"""

from dataclasses import dataclass

CORRECT = "correct"
INCORRECT = "incorrect"


class OrderValidationError(ValueError):
    """A submitted order play does not match the server's recomputation."""


@dataclass
class AttemptValidation:
    ordering: "list[str]"
    feedback: "list[str]"
    pairs_correct: int
    total_pairs: int

    def to_dict(self) -> dict:
        return {
            "ordering": self.ordering,
            "feedback": self.feedback,
            "pairs_correct": self.pairs_correct,
            "total_pairs": self.total_pairs,
        }


def get_correct_order(events: "list[dict]") -> "list[str]":
    """Event ids sorted by year, ties broken by id. The input list is not touched."""
    return [event["id"] for event in sorted(events, key=lambda e: (e["year"], e["id"]))]


def _as_id_list(value) -> list:
    """Client orderings arrive untyped; anything but a list or tuple is empty."""
    return list(value) if isinstance(value, (list, tuple)) else []


def arrays_equal(a: list, b: list) -> bool:
    return len(a) == len(b) and all(x == y for x, y in zip(a, b))


def would_solve(ordering: "list[str]", events: "list[dict]") -> bool:
    return arrays_equal(_as_id_list(ordering), get_correct_order(events))


def evaluate_ordering(ordering: "list[str]", events: "list[dict]") -> AttemptValidation:
    correct_order = get_correct_order(events)
    ordering = _as_id_list(ordering)

    feedback = [
        CORRECT if index < len(correct_order) and event_id == correct_order[index] else INCORRECT
        for index, event_id in enumerate(ordering)
    ]

    # A pair only scores when both ids are real events placed in true relative order.
    position = {event_id: index for index, event_id in enumerate(correct_order)}
    positions = [position.get(event_id) if isinstance(event_id, str) else None for event_id in ordering]
    n = len(ordering)
    pairs_correct = 0
    for i in range(n):
        pos_i = positions[i]
        if pos_i is None:
            continue
        for j in range(i + 1, n):
            pos_j = positions[j]
            if pos_j is not None and pos_i < pos_j:
                pairs_correct += 1

    return AttemptValidation(
        ordering=ordering,
        feedback=feedback,
        pairs_correct=pairs_correct,
        total_pairs=n * (n - 1) // 2,
    )


def is_solved(attempt) -> bool:
    """True when every feedback entry is correct; an empty attempt counts as solved."""
    feedback = attempt["feedback"] if isinstance(attempt, dict) else attempt.feedback
    return all(entry == CORRECT for entry in feedback)


def verify_submission(
    ordering: "list[str]",
    attempts: "list[dict]",
    events: "list[dict]",
    claimed_attempt_count: int,
) -> "list[AttemptValidation]":
    """
    Re-verifies a completed order play before it is persisted.

    Each attempt dict carries the client's "ordering", "feedback",
    "pairs_correct" and "total_pairs". Returns the server-side
    recomputation of every attempt.

    Raises:
        OrderValidationError: on any mismatch with the recomputation.
    """
    if claimed_attempt_count != len(attempts):
        raise OrderValidationError("Score verification failed: attempts count mismatch")
    if not attempts:
        raise OrderValidationError("Validation failed: no attempts submitted")
    if not would_solve(ordering, events):
        raise OrderValidationError("Validation failed: final ordering does not solve puzzle")

    verified = []
    for number, client_attempt in enumerate(attempts, start=1):
        if not isinstance(client_attempt, dict):
            raise OrderValidationError(f"Validation failed: attempt {number} is malformed")
        server = evaluate_ordering(client_attempt.get("ordering"), events)
        if not arrays_equal(_as_id_list(client_attempt.get("feedback")), server.feedback):
            raise OrderValidationError(f"Validation failed: attempt {number} feedback mismatch")
        if (
            client_attempt.get("pairs_correct") != server.pairs_correct
            or client_attempt.get("total_pairs") != server.total_pairs
        ):
            raise OrderValidationError(f"Validation failed: attempt {number} pair counts incorrect")
        verified.append(server)

    if not is_solved(verified[-1]):
        raise OrderValidationError("Validation failed: final attempt is not solved")

    return verified
