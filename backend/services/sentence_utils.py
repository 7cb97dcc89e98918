"""Sentence and clause segmentation for sentence-level chamfer scoring."""
import re
from typing import List

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+|\n+")
_CLAUSE_MARKERS = re.compile(r"[,;]|\s+and\s+|\s+or\s+|\s+but\s+|\s+while\s+|\s+when\s+|\s+if\s+", re.IGNORECASE)


def word_count(text: str) -> int:
    return len(text.split())


def split_into_sentences(text: str) -> List[str]:
    """
    Split text on sentence terminators or line breaks.

    Handles prose and markdown alike. Fragments shorter than two words are
    dropped; if nothing survives, the whole (stripped) text is returned as a
    single sentence.
    """
    if not text or not text.strip():
        return []

    segments = [s.strip() for s in _SENTENCE_BOUNDARY.split(text)]
    sentences = [s for s in segments if s and word_count(s) >= 2]

    if not sentences:
        return [text.strip()]
    return sentences


def split_query_into_clauses(query: str) -> List[str]:
    """
    Split a query into clauses on commas, semicolons and conjunctions.

    Queries rarely carry sentence punctuation, so conjunctions are the useful
    boundaries. Returns the whole query when fewer than two clauses of at
    least two words result.
    """
    if not query or not query.strip():
        return []

    clauses = [c.strip() for c in _CLAUSE_MARKERS.split(query)]
    clauses = [c for c in clauses if c and word_count(c) >= 2]

    if len(clauses) <= 1:
        return [query.strip()]
    return clauses
