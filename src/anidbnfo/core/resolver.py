"""Cross-reference resolver linking AniDB ids to secondary catalogs.

For an AniDB id without an id in a given secondary catalog, the resolver
searches that catalog with the anime's most distinctive titles and links the
best candidate.

Search policy:
- Queries are built lazily from the official Japanese title, then the main
  romanized title. A title ending in ``(YYYY)`` is followed by a synthetic
  query with the year stripped.
- Queries run one at a time and the search stops at the first exact match,
  keeping the number of calls against rate-limited catalogs low.
- Without an exact match the closest candidate seen across all queries is
  accepted, provided it is within the fuzzy threshold.
- Candidates lacking the catalog's required category are ignored entirely.
"""

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Optional

from anidbnfo.core.fuzzy_matcher import FuzzyMatcher, split_year
from anidbnfo.metadata.base import SearchCatalog
from anidbnfo.metadata.mapping import IdentityMap
from anidbnfo.metadata.models import AnimeIDs, SearchCandidate, TitleType, TitleVariant

logger = logging.getLogger(__name__)

NATIVE_LANGUAGE = "ja"
ROMANIZED_LANGUAGE = "x-jat"


@dataclass(frozen=True)
class SearchQuery:
    """One title to search a secondary catalog with."""

    title: str
    native: bool
    year: Optional[int] = None


@dataclass(frozen=True)
class ScoredCandidate:
    """A catalog hit compared against the query that produced it."""

    candidate: SearchCandidate
    distance: int
    exact: bool


def select_title(titles: list[TitleVariant]) -> Optional[TitleVariant]:
    """Return the most distinctive title for searching.

    Prefers the official Japanese title, then the main romanized title.
    """
    official = next(
        (
            t
            for t in titles
            if t.type == TitleType.OFFICIAL and t.language == NATIVE_LANGUAGE
        ),
        None,
    )
    if official is not None:
        return official
    return next(
        (
            t
            for t in titles
            if t.type == TitleType.MAIN and t.language == ROMANIZED_LANGUAGE
        ),
        None,
    )


def iter_queries(titles: list[TitleVariant]) -> Iterator[SearchQuery]:
    """Yield search queries for *titles* in priority order.

    Native-script queries come first. Every title carrying a trailing year
    is followed by its year-stripped synthetic variant.
    """
    ordered = [
        t
        for t in titles
        if t.type == TitleType.OFFICIAL and t.language == NATIVE_LANGUAGE
    ][:1] + [
        t
        for t in titles
        if t.type == TitleType.MAIN and t.language == ROMANIZED_LANGUAGE
    ][:1]
    for variant in ordered:
        native = variant.language == NATIVE_LANGUAGE
        yield SearchQuery(title=variant.title, native=native)
        stripped, year = split_year(variant.title)
        if year is not None:
            yield SearchQuery(title=stripped, native=native, year=year)


class CrossReferenceResolver:
    """Links AniDB ids to one secondary catalog."""

    def __init__(
        self,
        catalog: SearchCatalog,
        identity_map: IdentityMap,
        matcher: Optional[FuzzyMatcher] = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            catalog: The secondary catalog to search.
            identity_map: Map receiving confirmed links.
            matcher: Case-folding matcher for catalog titles.
        """
        self.catalog = catalog
        self.identity_map = identity_map
        self.matcher = matcher or FuzzyMatcher(case_sensitive=False)

    def __str__(self) -> str:
        return f"CrossReferenceResolver({self.catalog})"

    async def resolve(self, aid: int) -> Optional[AnimeIDs]:
        """Fill the catalog's cross-id of *aid* if it is missing.

        Returns:
            The (possibly updated) identity, or None if *aid* is unknown.

        Raises:
            AccessDenied: If the catalog rejects the credentials.
        """
        ids = self.identity_map.from_id(aid)
        if ids is None:
            return None
        if not self.catalog.enabled:
            return ids
        if getattr(ids, self.catalog.id_field) is not None:
            return ids

        titles = self.identity_map.titles_for(aid)
        if select_title(titles) is None:
            logger.debug("aid %d has no searchable title for %s", aid, self.catalog)
            return ids

        best = await self.search(iter_queries(titles))
        if best is None:
            logger.info("No %s match for aid %d", self.catalog, aid)
            return ids

        logger.info(
            "Linked aid %d to %s id %d (%s, distance %d)",
            aid,
            self.catalog,
            best.candidate.catalog_id,
            "exact" if best.exact else "fuzzy",
            best.distance,
        )
        return self.identity_map.link(aid, self.catalog.id_field, best.candidate.catalog_id)

    async def search(self, queries: Iterator[SearchQuery]) -> Optional[ScoredCandidate]:
        """Run *queries* one by one and return the accepted candidate.

        Stops at the first exact match; otherwise returns the closest fuzzy
        candidate across every query, first found on ties.
        """
        best: Optional[ScoredCandidate] = None
        for query in queries:
            candidates = await self.catalog.search(query.title)
            logger.debug("%s: %d candidates for %r", self.catalog, len(candidates), query.title)
            for candidate in candidates:
                scored = self.score(query, candidate)
                if scored is None:
                    continue
                if scored.exact:
                    return scored
                if best is None or scored.distance < best.distance:
                    best = scored
        return best

    def score(self, query: SearchQuery, candidate: SearchCandidate) -> Optional[ScoredCandidate]:
        """Compare *candidate* against *query*.

        Returns:
            The scored candidate, or None if it is ineligible or too far off.
        """
        required = self.catalog.required_category
        if required is not None and required not in candidate.categories:
            return None
        if query.year is not None and candidate.year != query.year:
            return None

        if query.native:
            pool = [candidate.native_title] if candidate.native_title else []
        else:
            pool = candidate.titles
        if not pool:
            return None

        threshold = self.matcher.threshold_for(
            native=query.native, year_qualified=query.year is not None
        )
        match = self.matcher.best_match(
            query.title,
            ((candidate.catalog_id, title) for title in pool),
            threshold=threshold,
        )
        if match is None:
            return None
        return ScoredCandidate(candidate=candidate, distance=match.distance, exact=match.exact)
