"""Near-duplicate headline detection for the optional merge dedupe."""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass

from mundus.services.pipeline_settings import MergeSettings

_WORD_RE = re.compile(r"[^\W_]+")

STOPWORDS = frozenset(
    "a an and at by for from in of on or the to with "
    "och og i på av för til till med en ett et den det".split()
)


@dataclass(frozen=True)
class Headline:
    title: str
    key: str
    words: frozenset[str]


def parse_headline(title: str) -> Headline:
    words = _WORD_RE.findall(str(title or "").casefold())
    return Headline(
        title=title,
        key=" ".join(words),
        words=frozenset(w for w in words if w not in STOPWORDS),
    )


def word_overlap(a: Headline, b: Headline) -> float:
    """Dice coefficient over the non-stopword vocabulary."""
    total = len(a.words) + len(b.words)
    if not total:
        return 0.0
    return 2 * len(a.words & b.words) / total


class HeadlineIndex:
    """Headlines already kept in a digest, queried in rank order."""

    def __init__(self, settings: MergeSettings | None = None) -> None:
        self.settings = settings or MergeSettings()
        self._kept: list[Headline] = []

    def _matches(self, candidate: Headline, kept: Headline) -> bool:
        if candidate.key == kept.key:
            return True
        shorter, longer = sorted((candidate.key, kept.key), key=len)
        if len(shorter) >= self.settings.title_containment_min_chars and shorter in longer:
            return True
        if word_overlap(candidate, kept) >= self.settings.title_word_threshold:
            return True
        ratio = difflib.SequenceMatcher(None, candidate.key, kept.key).ratio()
        return ratio >= self.settings.title_sequence_threshold

    def find(self, title: str) -> str | None:
        """Return the kept title ``title`` duplicates, if any."""
        candidate = parse_headline(title)
        if not candidate.key:
            return None
        for kept in self._kept:
            if self._matches(candidate, kept):
                return kept.title
        return None

    def add(self, title: str) -> None:
        headline = parse_headline(title)
        if headline.key:
            self._kept.append(headline)
