"""Smart-clue detection over merchant names and message text.

A clue is a ``"CATEGORY:KEYWORD"`` tag emitted whenever a taxonomy keyword
appears in the upper-cased merchant name or message body. Both functions here
are pure: identical inputs always produce identical outputs.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable

from .taxonomy import CATEGORY_ORDER, TAXONOMY, category_rank

_WORD_SPLIT_RE = re.compile(r"[^A-Z]+")


def _is_phrase(keyword: str) -> bool:
    return any(not ch.isalpha() for ch in keyword)


def detect_clues(
    merchant_name: str | None,
    text: str | None,
    *,
    whole_words: bool = False,
) -> frozenset[str]:
    """Return the set of ``"CATEGORY:KEYWORD"`` clues for a message.

    Merchant name and text are upper-cased and joined with a space; a keyword
    matches when it is a substring of that string.

    With ``whole_words=True``, single-word keywords must match a whole word
    (so ``BUS`` no longer fires inside ``BUSINESS``); keywords containing
    spaces or punctuation still match as substrings.
    """

    search_text = f"{(merchant_name or '').upper()} {(text or '').upper()}"
    words: frozenset[str] = (
        frozenset(w for w in _WORD_SPLIT_RE.split(search_text) if w)
        if whole_words
        else frozenset()
    )

    clues: set[str] = set()
    for category in CATEGORY_ORDER:
        for keyword in TAXONOMY[category]:
            if whole_words and not _is_phrase(keyword):
                hit = keyword in words
            else:
                hit = keyword in search_text
            if hit:
                clues.add(f"{category}:{keyword}")
    return frozenset(clues)


def clue_category(clue: str) -> str:
    """Return the category prefix of a ``"CATEGORY:KEYWORD"`` clue."""

    return clue.split(":", 1)[0]


def suggest_category(clues: Iterable[str]) -> str | None:
    """Return the category with the most clues, or ``None`` when there are none.

    Ties go to the category declared first in the taxonomy; categories outside
    the taxonomy rank after it, alphabetically.
    """

    tally = Counter(clue_category(c) for c in clues if c)
    if not tally:
        return None
    return min(tally, key=lambda cat: (-tally[cat], category_rank(cat)))


__all__ = ["clue_category", "detect_clues", "suggest_category"]
