"""Order-independent identity keys for ingredient lists."""

import re
from collections.abc import Iterable

STOP_WORDS = frozenset(
    {
        "of",
        "a",
        "an",
        "the",
        "large",
        "small",
        "medium",
        "fresh",
        "dried",
        "ground",
        "chopped",
        "sliced",
        "diced",
        "clove",
        "cloves",
        "and",
        "with",
        "optional",
        "raw",
        "cooked",
        "cup",
        "cups",
        "tbsp",
        "tsp",
        "gram",
        "grams",
        "oz",
        "ounce",
        "scoop",
        "scoops",
        "whole",
        "piece",
        "pieces",
        "ml",
        "l",
        "liter",
        "liters",
        "bottle",
        "bottles",
        "can",
        "cans",
        "rolled",
        "steel",
        "cut",
        "instant",
        "baby",
        "leaves",
        "powder",
        "isolate",
        "shake",
        "mix",
    }
)

_NON_LETTERS = re.compile(r"[^a-z ]")


def singularize(word: str) -> str:
    """Crude plural stripping; "tomatoes" -> "tomato", "eggs" -> "egg"."""
    if word.endswith("es") and len(word) > 3:
        return word[:-2]
    if word.endswith("s") and not word.endswith("ss") and len(word) > 3:
        return word[:-1]
    return word


def canonical_ingredient(name: str) -> str:
    """Reduce one ingredient name to its core words."""
    cleaned = _NON_LETTERS.sub(" ", name.strip().lower())
    words = [
        singularize(word)
        for word in cleaned.split()
        if word not in STOP_WORDS and len(word) > 1
    ]
    return " ".join(words)


def calculate_fingerprint(names: Iterable[str]) -> str:
    """Sort the canonical ingredient names and join them with commas."""
    canonical = (canonical_ingredient(name) for name in names)
    return ",".join(sorted(item for item in canonical if item))
