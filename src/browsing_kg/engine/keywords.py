"""Keyword extraction shared by topic inference and concept extraction."""

from __future__ import annotations

import re
from collections import Counter

from browsing_kg.models.entities import Page


STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "has", "have", "been", "from", "this",
    "that", "with", "they", "will", "what", "when", "make", "like", "just",
    "over", "such", "than", "them", "some", "very", "into", "most", "about",
    "home", "page", "search", "free", "here", "there", "more", "other",
    "also", "back", "first", "next", "last", "only", "then", "after",
})

# Concept extraction also drops URL debris that leaks into titles.
CONCEPT_STOP_WORDS: frozenset[str] = STOP_WORDS | {
    "http", "https", "www", "html", "undefined", "null",
}

_TITLE_SPLIT = re.compile(r"[\s\-_|/]+")
_CONCEPT_TITLE_SPLIT = re.compile(r"[\s\-_|/,:;.!?()\[\]{}]+")


def page_keywords(page: Page) -> list[str]:
    """Distinct keywords for one page, used by keyword co-occurrence topics.

    Both metadata keywords and title tokens must be 4–29 characters
    long; title tokens must also not be stop words.
    """
    keywords: list[str] = []

    for raw in page.metadata.keywords:
        kw = raw.lower().strip()
        if 3 < len(kw) < 30:
            keywords.append(kw)

    for word in _TITLE_SPLIT.split((page.title or "").lower()):
        if 3 < len(word) < 30 and word not in STOP_WORDS:
            keywords.append(word)

    return list(dict.fromkeys(keywords))


def weighted_keywords(
    pages: list[Page],
    *,
    min_count: int = 3,
    top_n: int = 20,
) -> list[str]:
    """Frequent keywords across *pages*, most frequent first.

    Title tokens count 1 per occurrence; metadata keywords count 2.
    """
    freq: Counter[str] = Counter()

    for page in pages:
        for word in _CONCEPT_TITLE_SPLIT.split((page.title or "").lower()):
            if 3 < len(word) < 25 and word not in CONCEPT_STOP_WORDS:
                freq[word] += 1

        for raw in page.metadata.keywords:
            kw = raw.lower().strip()
            if len(kw) > 2:
                freq[kw] += 2

    frequent = [(word, count) for word, count in freq.most_common() if count >= min_count]
    return [word for word, _ in frequent[:top_n]]
