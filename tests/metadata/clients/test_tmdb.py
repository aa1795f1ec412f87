"""Tests for the TMDB TV search client."""

import json
from pathlib import Path

import httpx
import pytest
import respx
from httpx import Response

from anidbnfo.core.resolver import CrossReferenceResolver
from anidbnfo.errors import AccessDenied
from anidbnfo.metadata.clients.tmdb import TMDBClient, _extract_year
from anidbnfo.metadata.mapping import IdentityMap
from anidbnfo.metadata.models import TitleType, TitleVariant

SEARCH_URL = "https://api.themoviedb.org/3/search/tv"


@pytest.fixture
def search_response() -> dict:
    """Load the TMDB TV search fixture."""
    path = Path(__file__).parent / "test_fixtures" / "tmdb" / "search_tv_response.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_search_maps_candidates(search_response: dict) -> None:
    """Results are mapped with their genres translated to names."""
    with respx.mock:
        route = respx.get(SEARCH_URL).mock(return_value=Response(200, json=search_response))
        results = await TMDBClient(api_key="key").search("星界の紋章")

    params = route.calls.last.request.url.params
    assert params["query"] == "星界の紋章"
    assert params["api_key"] == "key"

    assert [r.catalog_id for r in results] == [30983, 26707]
    anime = results[1]
    assert anime.native_title == "星界の紋章"
    assert anime.titles == ["Crest of the Stars"]
    assert anime.year == 1999
    assert anime.categories == ["Animation", "Sci-Fi & Fantasy"]
    assert results[0].categories == ["Drama"]


@pytest.mark.asyncio
async def test_search_unauthorized() -> None:
    """An invalid API key is an AccessDenied."""
    with respx.mock:
        respx.get(SEARCH_URL).mock(
            return_value=Response(401, json={"status_message": "Invalid API key"})
        )
        with pytest.raises(AccessDenied) as exc_info:
            await TMDBClient(api_key="bad").search("Naruto")
    assert "Invalid API key" in str(exc_info.value)


@pytest.mark.asyncio
async def test_search_server_error_yields_empty() -> None:
    """Server errors degrade to no candidates."""
    with respx.mock:
        respx.get(SEARCH_URL).mock(return_value=Response(500))
        assert await TMDBClient(api_key="key").search("Naruto") == []


@pytest.mark.asyncio
async def test_search_network_error_yields_empty() -> None:
    """Transport errors degrade to no candidates."""
    with respx.mock:
        respx.get(SEARCH_URL).mock(side_effect=httpx.ReadTimeout("slow"))
        assert await TMDBClient(api_key="key").search("Naruto") == []


def test_enabled_requires_api_key() -> None:
    """The client is disabled without an API key."""
    assert not TMDBClient().enabled
    assert TMDBClient(api_key="key").enabled


def test_extract_year() -> None:
    """Years are read from the first four characters of a date."""
    assert _extract_year("1999-01-02") == 1999
    assert _extract_year("") is None
    assert _extract_year(None) is None
    assert _extract_year("n/a") is None


@pytest.mark.asyncio
async def test_resolver_skips_live_action_adaptation(
    tmp_path: Path, search_response: dict
) -> None:
    """Only the Animation hit is linked, even though both share the title."""
    mapping = IdentityMap(tmp_path, max_age=7)
    mapping.catalog.set_titles(
        1,
        [
            TitleVariant(title="Seikai no Monshou", type=TitleType.MAIN, language="x-jat"),
            TitleVariant(title="星界の紋章", type=TitleType.OFFICIAL, language="ja"),
        ],
    )
    mapping.update(1)

    with respx.mock:
        route = respx.get(SEARCH_URL).mock(return_value=Response(200, json=search_response))
        ids = await CrossReferenceResolver(TMDBClient(api_key="key"), mapping).resolve(1)

    assert route.call_count == 1
    assert ids is not None
    assert ids.tmdb == 26707
