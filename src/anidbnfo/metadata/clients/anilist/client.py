"""AniList GraphQL client implementation.

This module provides an implementation of the SearchCatalog interface for the
AniList GraphQL API. Only anime are searched; every hit is mapped onto a
:class:`SearchCandidate` carrying its native, romaji and English titles.
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx

from anidbnfo.errors import AccessDenied
from anidbnfo.metadata.base import SearchCatalog
from anidbnfo.metadata.models import SearchCandidate

logger = logging.getLogger(__name__)

# GraphQL queries
SEARCH_QUERY = """
query ($search: String, $perPage: Int) {
  Page(perPage: $perPage) {
    media(search: $search, type: ANIME) {
      id
      title {
        romaji
        english
        native
      }
      synonyms
      format
      genres
      seasonYear
      startDate {
        year
      }
    }
  }
}
"""


class AniListClient(SearchCatalog):
    """AniList GraphQL client for anime search.

    The resolver is only enabled when a token is configured, which keeps the
    request volume against AniList opt-in.
    """

    name = "anilist"
    id_field = "anilist"

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        per_page: int = 10,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize AniList client.

        Args:
            token: AniList API token; the client is disabled without one.
            per_page: Maximum number of hits requested per search.
            client: Optional HTTP client to reuse.
        """
        self.api_url = "https://graphql.anilist.co"
        self.token = token
        self.per_page = per_page
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    async def search(self, title: str) -> List[SearchCandidate]:
        """Search for anime by title.

        Args:
            title: The anime title to search for.

        Returns:
            A list of SearchCandidate objects, empty on no hits or on
            transient API errors (including rate limiting).

        Raises:
            AccessDenied: If AniList rejects the token.
        """
        variables = {"search": title, "perPage": self.per_page}
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

        try:
            if self._client is None:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, variables, headers)
            else:
                response = await self._post(self._client, variables, headers)
        except httpx.HTTPError as exc:
            logger.warning("AniList search for %r failed: %s", title, exc)
            return []

        if response.status_code in (HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN):
            raise AccessDenied(self.name, _first_error(response))
        if response.status_code == HTTPStatus.BAD_REQUEST and "token" in (
            _first_error(response) or ""
        ).lower():
            raise AccessDenied(self.name, _first_error(response))
        if response.is_error:
            logger.warning(
                "AniList search for %r returned HTTP %d", title, response.status_code
            )
            return []

        data = response.json()
        if data.get("errors"):
            logger.warning("AniList search for %r failed: %s", title, data["errors"])
            return []

        media = ((data.get("data") or {}).get("Page") or {}).get("media") or []
        return [self._map_to_candidate(item) for item in media]

    async def _post(
        self,
        client: httpx.AsyncClient,
        variables: Dict[str, Any],
        headers: Dict[str, str],
    ) -> httpx.Response:
        return await client.post(
            self.api_url,
            json={"query": SEARCH_QUERY, "variables": variables},
            headers=headers,
            timeout=10.0,
        )

    def _map_to_candidate(self, media: Dict[str, Any]) -> SearchCandidate:
        """Map an AniList Media object to a SearchCandidate."""
        title = media.get("title") or {}
        titles = [
            value
            for value in (title.get("romaji"), title.get("english"))
            if value
        ]
        titles.extend(synonym for synonym in media.get("synonyms") or [] if synonym)
        year = media.get("seasonYear") or (media.get("startDate") or {}).get("year")
        return SearchCandidate(
            catalog_id=media["id"],
            native_title=title.get("native"),
            titles=titles,
            year=year,
            categories=list(media.get("genres") or []),
        )


def _first_error(response: httpx.Response) -> Optional[str]:
    """Return the first GraphQL error message of *response*, if any."""
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return None
    if errors and isinstance(errors[0], dict):
        return errors[0].get("message")
    return None
