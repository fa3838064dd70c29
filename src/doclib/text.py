"""Tokenisation helpers shared by the index and the document router."""
from __future__ import annotations

import re
from typing import List

_TOKEN_RE = re.compile(r"[a-z0-9]+")
_SPACE_RE = re.compile(r"\s+")

STOPWORDS = frozenset(
    """
    a an and are as at be by can do does for from has have how i if in into is
    it its me my of on or so that the their them then there these this to was
    what when where which who why will with would you your
    """.split()
)


def normalize_for_match(text: str) -> str:
    return _SPACE_RE.sub(" ", text.lower()).strip()


def stem(token: str) -> str:
    """Fold common English plural endings so ``penalties`` and ``penalty`` agree."""

    if len(token) > 4 and token.endswith("ies"):
        return token[:-3] + "y"
    if len(token) > 4 and token.endswith(("sses", "xes", "zes", "ches", "shes")):
        return token[:-2]
    if len(token) > 3 and token.endswith("s") and not token.endswith(("ss", "us", "is")):
        return token[:-1]
    return token


def words(text: str) -> List[str]:
    return _TOKEN_RE.findall(text.lower())


def tokenize(text: str) -> List[str]:
    return [stem(word) for word in words(text)]


def content_terms(text: str) -> List[str]:
    """Stemmed tokens of ``text`` with common English function words removed."""

    return [stem(word) for word in words(text) if word not in STOPWORDS]


__all__ = ["STOPWORDS", "content_terms", "normalize_for_match", "stem", "tokenize", "words"]
