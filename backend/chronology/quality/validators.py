"""
Deterministic safety-net checks for generated event clues.

Every check is a pure function over the event text. The generator model is
told to self-validate against the same rules, but its claims are advisory;
passes_validation() is the gate every persisted event goes through.
"""

import re

DEFAULT_MAX_WORDS = 20

_NUMERAL = re.compile(r"\d+")
_PERIOD_TERMS = re.compile(r"\b(century|centuries|decade|decades|millennium|millennia)\b", re.IGNORECASE)
_ERA_MARKERS = re.compile(r"\b(BCE|CE|AD|BC)\b", re.IGNORECASE)
_DOTTED_ERA_MARKERS = re.compile(r"(?<![A-Za-z])(B\.C\.E?\.?|A\.D\.?|C\.E\.?)", re.IGNORECASE)

VAGUE_PATTERNS = (
    re.compile(r"^(a|an|the) (major|important|significant|notable) (event|thing|moment)", re.IGNORECASE),
    re.compile(r"^something (happens|occurs|takes place)", re.IGNORECASE),
    re.compile(r"^(a|an) \w+ (is|are) (made|created|built|founded)$", re.IGNORECASE),
)


def has_leakage(text: str) -> bool:
    """
    True when the text gives the year away: a numeral worth 10 or more, a
    century/decade/millennium term, or an era marker such as BCE or A.D.
    Digit runs count even when glued to letters ("1960s", "1066AD", "15th").
    Single digits stay legal ("World War 2", "Henry 8").
    """
    if any(int(match) >= 10 for match in _NUMERAL.findall(text)):
        return True
    if _PERIOD_TERMS.search(text):
        return True
    return bool(_ERA_MARKERS.search(text) or _DOTTED_ERA_MARKERS.search(text))


def has_proper_noun(text: str) -> bool:
    """True if any word after the first starts with a capital letter."""
    words = text.split()
    for word in words[1:]:
        letters = re.sub(r"[^A-Za-z]", "", word)
        if letters and letters[0].isupper():
            return True
    return False


def word_count(text: str) -> int:
    return len(text.split())


def is_valid_word_count(text: str, max_words: int = DEFAULT_MAX_WORDS) -> bool:
    return word_count(text) <= max_words


def is_vague(text: str) -> bool:
    stripped = text.strip()
    return any(pattern.search(stripped) for pattern in VAGUE_PATTERNS)


def explain_failures(text: str, max_words: int = DEFAULT_MAX_WORDS) -> "list[str]":
    """Names every rule the text breaks; an empty list means it passes."""
    failures = []
    if has_leakage(text):
        failures.append("leakage")
    if not has_proper_noun(text):
        failures.append("no_proper_noun")
    if not is_valid_word_count(text, max_words):
        failures.append("too_long")
    if is_vague(text):
        failures.append("vague")
    return failures


def passes_validation(text: str, max_words: int = DEFAULT_MAX_WORDS) -> bool:
    return not explain_failures(text, max_words)
