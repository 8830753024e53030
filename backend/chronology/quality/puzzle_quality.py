"""
Puzzle-level quality checks over a pool of candidate events.

Events may be CandidateEvent models or plain dicts with the same keys
(rows read back from the event pool are dicts).
"""

import re

REDUNDANCY_THRESHOLD = 0.6
MIN_SIGNIFICANT_WORD_LENGTH = 4

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def _get(event, name: str):
    return event[name] if isinstance(event, dict) else getattr(event, name)


def _significant_words(hint: str) -> "set[str]":
    normalized = _NON_ALNUM.sub("", hint.lower())
    return {word for word in normalized.split() if len(word) >= MIN_SIGNIFICANT_WORD_LENGTH}


def has_obvious_redundancy(hints: "list[str]") -> bool:
    """
    True when any two hints share more than 60% of their significant words,
    measured against the smaller of the two word sets.
    """
    word_sets = [_significant_words(hint) for hint in hints]
    for i in range(len(word_sets)):
        for j in range(i + 1, len(word_sets)):
            smaller = min(len(word_sets[i]), len(word_sets[j]))
            if smaller == 0:
                continue
            overlap = len(word_sets[i] & word_sets[j])
            if overlap / smaller > REDUNDANCY_THRESHOLD:
                return True
    return False


def has_topic_diversity(events, min_categories: int = 3) -> bool:
    return len({_get(event, "category") for event in events}) >= min_categories


def select_diverse_hints(events, count: int = 6) -> "list[str]":
    """
    Picks `count` hint texts, easiest first, covering as many categories as
    possible before repeating one.

    Raises:
        ValueError: fewer than `count` events were supplied.
    """
    if len(events) < count:
        raise ValueError(f"Need at least {count} events, got {len(events)}")

    # sorted() is stable, so equal difficulties keep their input order.
    ranked = sorted(events, key=lambda event: _get(event, "difficulty"))

    selected_indexes: "list[int]" = []
    seen_categories: set = set()
    for index, event in enumerate(ranked):
        if len(selected_indexes) == count:
            break
        category = _get(event, "category")
        if category not in seen_categories:
            selected_indexes.append(index)
            seen_categories.add(category)

    taken = set(selected_indexes)
    for index in range(len(ranked)):
        if len(selected_indexes) == count:
            break
        if index not in taken:
            selected_indexes.append(index)

    return [_get(ranked[index], "text") for index in selected_indexes]
