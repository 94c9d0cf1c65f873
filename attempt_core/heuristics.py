# attempt_core/heuristics.py
from __future__ import annotations
import re
from typing import List

from .config import NEGATION_WORDS, SHORT_MAX_EDIT, SHORT_OVERLAP_MIN, SHORT_STOPWORDS

_PUNCT_RX = re.compile(r"[^\w\s]")
_SPACE_RX = re.compile(r"\s+")
_APOS_RX = re.compile(r"['’]")


def normalise(text: str) -> str:
    if not isinstance(text, str): return ""
    t = _APOS_RX.sub("", text.lower())
    t = _PUNCT_RX.sub(" ", t)
    return _SPACE_RX.sub(" ", t).strip()


def tokenise(text: str) -> List[str]:
    return [t for t in normalise(text).split(" ") if len(t) > 1 and t not in SHORT_STOPWORDS]


def levenshtein(a: str, b: str) -> int:
    if a == b: return 0
    if not a: return len(b)
    if not b: return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost))
        prev = cur
    return prev[-1]


def _fuzzy_has(tokens: List[str], target: str, max_edit: int) -> bool:
    return any(t == target or levenshtein(t, target) <= max_edit for t in tokens)


def _negated(tokens: List[str]) -> bool:
    return any(t in NEGATION_WORDS for t in tokens)


def token_overlap(user_text: str, correct_text: str, max_edit: int = SHORT_MAX_EDIT) -> float:
    """Fraction of distinct canonical tokens the student hit (typo tolerant)."""
    user = [t for t in tokenise(user_text) if t not in NEGATION_WORDS]
    canon = {t for t in tokenise(correct_text) if t not in NEGATION_WORDS}
    if not user or not canon:
        return 0.0
    hits = sum(1 for ct in canon if _fuzzy_has(user, ct, max_edit))
    return hits / len(canon)


def exact_match(user_text: str, correct_text: str) -> bool:
    return (user_text or "").strip() == (correct_text or "").strip()


def normalized_match(user_text: str, correct_text: str) -> bool:
    u = normalise(user_text)
    return bool(u) and u == normalise(correct_text)


def fuzzy_match(
    user_text: str,
    correct_text: str,
    *,
    min_overlap: float = SHORT_OVERLAP_MIN,
    max_edit: int = SHORT_MAX_EDIT,
) -> bool:
    if normalized_match(user_text, correct_text):
        return True
    user = tokenise(user_text)
    if not user:
        return False
    # "does not have a nucleus" vs "has a nucleus" share every content token
    if _negated(user) != _negated(tokenise(correct_text)):
        return False
    return token_overlap(user_text, correct_text, max_edit) >= min_overlap
