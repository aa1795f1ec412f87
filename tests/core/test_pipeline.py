"""Tests for the end-to-end resolution pipeline.

The identity map's datasets are pre-seeded as fresh cache files so that only
the AniDB HTTP API needs to be mocked.
"""

import json
import shutil
from pathlib import Path

import pytest
import respx
from httpx import Response

from anidbnfo.core.pipeline import ResolutionPipeline, display_title, original_title
from anidbnfo.metadata.cache import MetadataCache
from anidbnfo.metadata.clients.anidb import AniDBClient
from anidbnfo.metadata.clients.tmdb import TMDBClient
from anidbnfo.metadata.mapping import COMMUNITY_FILE, TITLES_FILE, IdentityMap
from anidbnfo.metadata.models import TitleType, TitleVariant
from anidbnfo.utils.config import CacheConfig, ExporterConfig

FIXTURES = Path(__file__).parents[1] / "metadata" / "test_fixtures"
ANIDB_FIXTURES = Path(__file__).parents[1] / "metadata" / "clients" / "test_fixtures" / "anidb"


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    """Cache directory holding a fresh title dump and community mapping."""
    root = tmp_path / "cache"
    root.mkdir()
    shutil.copy(FIXTURES / "anime-titles.xml", root / TITLES_FILE)
    shutil.copy(FIXTURES / "pmm_anime_ids.json", root / COMMUNITY_FILE)
    return root


@pytest.fixture
def pipeline(cache_root: Path) -> ResolutionPipeline:
    """Pipeline with a disabled TMDB catalog and a configured AniDB client."""
    return ResolutionPipeline(
        identity_map=IdentityMap(cache_root, max_age=7),
        anidb=AniDBClient("anidbnfo", 1, MetadataCache(cache_root, 90)),
        catalogs=[TMDBClient(api_key=None)],
    )


@pytest.fixture
def anime_dir(tmp_path: Path) -> Path:
    """Anime directory named after the main title with three episode files."""
    directory = tmp_path / "library" / "Seikai no Monshou"
    directory.mkdir(parents=True)
    for name in (
        "Seikai no Monshou - 01-02 - Invasion (ABCDEF12).mkv",
        "Seikai no Monshou - 03 - Lafiel (12345678).mkv",
        "Seikai no Monshou - C1 - Opening (AAAAAAAA).mkv",
    ):
        (directory / name).touch()
    return directory


def test_display_and_original_title() -> None:
    """The main romanized title is displayed; the official Japanese one is original."""
    titles = [
        TitleVariant(title="星界の紋章", type=TitleType.OFFICIAL, language="ja"),
        TitleVariant(title="Seikai no Monshou", type=TitleType.MAIN, language="x-jat"),
    ]
    assert display_title(titles, "fallback") == "Seikai no Monshou"
    assert original_title(titles) == "星界の紋章"
    assert display_title([], "fallback") == "fallback"
    assert original_title([]) is None


@pytest.mark.asyncio
async def test_run_resolves_directory(pipeline: ResolutionPipeline, anime_dir: Path) -> None:
    """A directory named after a catalog title is fully resolved."""
    payload = (ANIDB_FIXTURES / "anime_1.xml").read_bytes()
    with respx.mock:
        route = respx.get(host="api.anidb.net", path="/httpapi").mock(
            return_value=Response(200, content=payload)
        )
        resolved = await pipeline.run(anime_dir)

    assert route.call_count == 1
    assert resolved is not None
    assert resolved.ids.anidb == 1
    assert resolved.ids.anilist == 1
    assert resolved.ids.tvdb == 72025
    assert resolved.ids.tmdb == 26707
    assert resolved.title == "Seikai no Monshou"
    assert resolved.original_title == "星界の紋章"
    assert resolved.premiered == "1999-01-02"
    assert resolved.poster is None

    bound = [(e.season, e.episode, e.title) for g in resolved.episodes for e in g.episodes]
    assert bound == [
        (1, 1, "Invasion"),
        (1, 2, "Kin's Heart"),
        (1, 3, "Lafiel"),
        (0, 301, "Opening"),
    ]


@pytest.mark.asyncio
async def test_run_reuses_cached_metadata(pipeline: ResolutionPipeline, anime_dir: Path) -> None:
    """A second run is served from the metadata cache unless forced."""
    payload = (ANIDB_FIXTURES / "anime_1.xml").read_bytes()
    with respx.mock:
        route = respx.get(host="api.anidb.net", path="/httpapi").mock(
            return_value=Response(200, content=payload)
        )
        await pipeline.run(anime_dir)
        await pipeline.run(anime_dir)
        assert route.call_count == 1
        await pipeline.run(anime_dir, force_update=True)
        assert route.call_count == 2


@pytest.mark.asyncio
async def test_run_without_match_returns_none(pipeline: ResolutionPipeline, tmp_path: Path) -> None:
    """A directory that matches no title yields None."""
    unknown = tmp_path / "Completely Unrelated Documentary"
    unknown.mkdir()
    assert await pipeline.run(unknown) is None


@pytest.mark.asyncio
async def test_run_rejects_missing_directory(pipeline: ResolutionPipeline, tmp_path: Path) -> None:
    """The anime directory must exist."""
    with pytest.raises(NotADirectoryError):
        await pipeline.run(tmp_path / "missing")


@pytest.mark.asyncio
async def test_identify_with_explicit_ids(
    pipeline: ResolutionPipeline, tmp_path: Path, cache_root: Path
) -> None:
    """Explicit ids bypass the title search and are stored as overrides."""
    anime_dir = tmp_path / "whatever"
    anime_dir.mkdir()
    ids = await pipeline.identify(anime_dir, aid=239, anilist_id=999, tmdb_id=46260)

    assert ids is not None
    assert ids.anidb == 239
    assert ids.anilist == 999
    assert ids.tmdb == 46260
    stored = json.loads((cache_root / "local_anime_ids.json").read_text(encoding="utf-8"))
    assert stored == {"239": {"anilist": 999, "tmdb": 46260}}


@pytest.mark.asyncio
async def test_identify_fraction_slash_directory(pipeline: ResolutionPipeline, tmp_path: Path) -> None:
    """Directory names carrying a fraction slash match titles with '/'."""
    anime_dir = tmp_path / "Fate⁄stay night"
    anime_dir.mkdir()
    ids = await pipeline.identify(anime_dir)
    assert ids is not None
    assert ids.anidb == 356


@pytest.mark.asyncio
async def test_identify_anidb_tag(pipeline: ResolutionPipeline, tmp_path: Path) -> None:
    """An [anidb-<aid>] tag in the directory name wins over title matching."""
    anime_dir = tmp_path / "Naruto [anidb-8142]"
    anime_dir.mkdir()
    ids = await pipeline.identify(anime_dir)
    assert ids is not None
    assert ids.anidb == 8142
    assert ids.tvdb == 252322


def test_from_config_carries_overwrite_flag(cache_root: Path) -> None:
    """The configured NFO overwrite policy reaches the pipeline."""
    config = ExporterConfig(overwrite_nfo=True, cache=CacheConfig(path=cache_root))
    assert ResolutionPipeline.from_config(config).overwrite_nfo


@pytest.mark.asyncio
async def test_run_exposes_overwrite_flag(cache_root: Path, anime_dir: Path) -> None:
    """Renderers learn from the result whether to replace existing NFO files."""
    pipeline = ResolutionPipeline(
        identity_map=IdentityMap(cache_root, max_age=7),
        anidb=AniDBClient("anidbnfo", 1, MetadataCache(cache_root, 90)),
        catalogs=[],
        overwrite_nfo=True,
    )
    payload = (ANIDB_FIXTURES / "anime_1.xml").read_bytes()
    with respx.mock:
        respx.get(host="api.anidb.net", path="/httpapi").mock(
            return_value=Response(200, content=payload)
        )
        resolved = await pipeline.run(anime_dir)

    assert resolved is not None
    assert resolved.overwrite_nfo
