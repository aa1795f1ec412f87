"""Fuzzy title matcher for anidbnfo.

Uses rapidfuzz's Levenshtein distance to match a free-form title against a
pool of ``(key, title)`` pairs.

Matching runs in two passes over the pool:

1. Exact: string equality (case-sensitive for AniDB lookups, case-folded for
   cross-catalog comparisons). The first exact hit in pool order wins and
   ends the search.
2. Threshold: the candidate with the smallest edit distance at or under the
   threshold. Ties keep the candidate found first.

Both passes share a single iteration so that the pool may be a generator.
"""

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from rapidfuzz.distance import Levenshtein

from anidbnfo.utils.config import MatchingConfig

K = TypeVar("K")

FRACTION_SLASH = "⁄"
YEAR_SUFFIX_RE = re.compile(r"^(?P<title>.*\S)\s*\((?P<year>\d{4})\)$")


def normalize_title(title: str) -> str:
    """Return *title* in the form used for every comparison.

    Directory names cannot contain ``/`` so they carry U+2044 FRACTION SLASH
    instead; it is mapped back to ASCII. NFC composition makes precomposed
    and decomposed kana/accents compare equal.
    """
    return unicodedata.normalize("NFC", title.replace(FRACTION_SLASH, "/")).strip()


def split_year(title: str) -> tuple[str, Optional[int]]:
    """Split a trailing parenthesized year off *title*.

    ``"Hunter x Hunter (2011)"`` becomes ``("Hunter x Hunter", 2011)``; titles
    without such a suffix come back unchanged with ``None``.
    """
    match = YEAR_SUFFIX_RE.match(title.strip())
    if not match:
        return title, None
    return match.group("title"), int(match.group("year"))


@dataclass(frozen=True)
class MatchResult(Generic[K]):
    """Best candidate found by :meth:`FuzzyMatcher.best_match`."""

    key: K
    title: str
    distance: int
    exact: bool


class FuzzyMatcher:
    """Edit-distance matcher with exact-match priority and a tunable threshold."""

    def __init__(
        self,
        threshold: int = 5,
        native_multiplier: float = 1.5,
        romanized_multiplier: float = 4.0,
        *,
        case_sensitive: bool = True,
    ) -> None:
        """Initialize the matcher.

        Args:
            threshold: Maximum edit distance accepted by the threshold pass.
            native_multiplier: Threshold relaxation for year-qualified
                native-script comparisons.
            romanized_multiplier: Threshold relaxation for year-qualified
                romanized or translated comparisons.
            case_sensitive: Compare exactly (AniDB lookups) or case-folded
                (cross-catalog comparisons).
        """
        self.threshold = threshold
        self.native_multiplier = native_multiplier
        self.romanized_multiplier = romanized_multiplier
        self.case_sensitive = case_sensitive

    @classmethod
    def from_config(
        cls, config: MatchingConfig, *, case_sensitive: bool = True
    ) -> "FuzzyMatcher":
        """Build a matcher from the ``[matching]`` configuration section."""
        return cls(
            threshold=config.threshold,
            native_multiplier=config.native_multiplier,
            romanized_multiplier=config.romanized_multiplier,
            case_sensitive=case_sensitive,
        )

    def _prepare(self, title: str) -> str:
        title = normalize_title(title)
        return title if self.case_sensitive else title.casefold()

    def threshold_for(self, *, native: bool, year_qualified: bool) -> float:
        """Return the effective distance threshold for a comparison.

        The base threshold is only relaxed when the query carried a year that
        the candidate matched; transliterations drift more than native script.
        """
        if not year_qualified:
            return float(self.threshold)
        multiplier = self.native_multiplier if native else self.romanized_multiplier
        return self.threshold * multiplier

    def best_match(
        self,
        query: str,
        pool: Iterable[tuple[K, str]],
        *,
        threshold: Optional[float] = None,
    ) -> Optional[MatchResult[K]]:
        """Find the best candidate for *query* in *pool*.

        Args:
            query: The title to look up.
            pool: ``(key, title)`` pairs in a stable order.
            threshold: Override for the maximum accepted distance.

        Returns:
            The first exact match, else the closest candidate within the
            threshold, else None.
        """
        needle = self._prepare(query)
        if not needle:
            return None
        limit = int(self.threshold if threshold is None else threshold)

        best: Optional[MatchResult[K]] = None
        for key, title in pool:
            candidate = self._prepare(title)
            if candidate == needle:
                return MatchResult(key=key, title=title, distance=0, exact=True)
            if limit < 1:
                continue
            distance = Levenshtein.distance(needle, candidate, score_cutoff=limit)
            if distance <= limit and (best is None or distance < best.distance):
                best = MatchResult(key=key, title=title, distance=distance, exact=False)
        return best
