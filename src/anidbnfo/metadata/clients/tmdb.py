# WARNING: API keys belong in config.toml or the environment, never in code.

"""TMDB catalog client.

Implements the SearchCatalog interface for The Movie Database (TMDB) TV
search. Only TV shows are searched; TMDB movie ids are not supported.
"""

import logging
from http import HTTPStatus
from typing import Any, Optional

import httpx

from anidbnfo.errors import AccessDenied
from anidbnfo.metadata.base import SearchCatalog
from anidbnfo.metadata.models import SearchCandidate

logger = logging.getLogger(__name__)

YEAR_LENGTH = 4  # Minimum length for a valid year string

# TMDB TV genre ids, see https://developer.themoviedb.org/reference/genre-tv-list
TV_GENRES: dict[int, str] = {
    10759: "Action & Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    10762: "Kids",
    9648: "Mystery",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
    37: "Western",
}


class TMDBClient(SearchCatalog):
    """Client for the TMDB v3 TV search endpoint.

    A TV show only qualifies when TMDB files it under Animation, which weeds
    out live-action adaptations sharing the anime's title.
    """

    name = "tmdb"
    id_field = "tmdb"
    required_category = "Animation"

    BASE_URL = "https://api.themoviedb.org/3"

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize TMDBClient.

        Args:
            api_key: TMDB v3 API key; the client is disabled without one.
            client: Optional HTTP client to reuse.
        """
        self.api_key = api_key
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, title: str) -> list[SearchCandidate]:
        """Search TV shows by title.

        Args:
            title: The title to search for.

        Returns:
            List of SearchCandidate objects; empty on no hits or transient
            errors.

        Raises:
            AccessDenied: If TMDB rejects the API key.
        """
        url = f"{self.BASE_URL}/search/tv"
        params = {"query": title, "api_key": self.api_key, "include_adult": "true"}
        try:
            if self._client is None:
                async with httpx.AsyncClient() as client:
                    resp = await client.get(url, params=params, timeout=10.0)
            else:
                resp = await self._client.get(url, params=params, timeout=10.0)
        except httpx.HTTPError as exc:
            logger.warning("TMDB search for %r failed: %s", title, exc)
            return []

        if resp.status_code == HTTPStatus.UNAUTHORIZED:
            raise AccessDenied(self.name, _status_message(resp))
        if resp.is_error:
            logger.warning("TMDB search for %r returned HTTP %d", title, resp.status_code)
            return []

        data = resp.json()
        return [_map_to_candidate(item) for item in data.get("results", [])]


def _map_to_candidate(item: dict[str, Any]) -> SearchCandidate:
    titles = [item["name"]] if item.get("name") else []
    return SearchCandidate(
        catalog_id=item["id"],
        native_title=item.get("original_name"),
        titles=titles,
        year=_extract_year(item.get("first_air_date")),
        categories=[
            TV_GENRES[genre] for genre in item.get("genre_ids", []) if genre in TV_GENRES
        ],
    )


def _extract_year(date_str: Optional[str]) -> Optional[int]:
    """Extract the year from a YYYY-MM-DD date string."""
    if date_str and len(date_str) >= YEAR_LENGTH and date_str[:YEAR_LENGTH].isdigit():
        return int(date_str[:YEAR_LENGTH])
    return None


def _status_message(resp: httpx.Response) -> Optional[str]:
    try:
        return resp.json().get("status_message")
    except ValueError:
        return None
