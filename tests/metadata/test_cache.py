"""Tests for the TTL-gated dataset and metadata caches."""

import gzip
import os
import stat
import time
from pathlib import Path

import httpx
import pytest
import respx
from httpx import Response

from anidbnfo.metadata.cache import (
    FILE_MODE,
    SECONDS_PER_DAY,
    DataSource,
    MetadataCache,
    StreamInflater,
    cache_age_days,
    ensure_fresh,
    is_fresh,
)

TITLES_URL = "https://anidb.net/api/anime-titles.xml.gz"
JSON_URL = "https://example.org/mapping.json"


def _age(path: Path, days: float) -> None:
    """Backdate the mtime of *path* by *days*."""
    stamp = time.time() - days * SECONDS_PER_DAY
    os.utime(path, (stamp, stamp))


def test_is_fresh(tmp_path: Path) -> None:
    """Files younger than the TTL are fresh; missing files never are."""
    path = tmp_path / "data.json"
    assert not is_fresh(path, 7)
    assert cache_age_days(path) is None

    path.write_text("{}")
    _age(path, 1)
    assert is_fresh(path, 7)
    _age(path, 8)
    assert not is_fresh(path, 7)
    assert cache_age_days(path) == pytest.approx(8, abs=0.01)


def test_is_fresh_honours_now(tmp_path: Path) -> None:
    """An explicit clock is used instead of the wall clock."""
    path = tmp_path / "data.json"
    path.write_text("{}")
    future = time.time() + 10 * SECONDS_PER_DAY
    assert not is_fresh(path, 7, now=future)


@pytest.mark.asyncio
async def test_ensure_fresh_skips_fresh_copy(tmp_path: Path) -> None:
    """A one-day-old copy with a seven-day TTL is not refetched."""
    cache = tmp_path / "mapping.json"
    cache.write_text('{"old": true}')
    _age(cache, 1)
    source = DataSource(url=JSON_URL, cache=cache, max_age=7)

    with respx.mock(assert_all_called=False) as router:
        route = router.get(JSON_URL).mock(return_value=Response(200, text="{}"))
        assert await ensure_fresh(source)
        assert not route.called
    assert cache.read_text() == '{"old": true}'


@pytest.mark.asyncio
async def test_ensure_fresh_refetches_stale_copy(tmp_path: Path) -> None:
    """An eight-day-old copy is replaced by the downloaded one."""
    cache = tmp_path / "mapping.json"
    cache.write_text('{"old": true}')
    _age(cache, 8)
    source = DataSource(url=JSON_URL, cache=cache, max_age=7)

    with respx.mock:
        respx.get(JSON_URL).mock(return_value=Response(200, text='{"new": true}'))
        assert await ensure_fresh(source)

    assert cache.read_text() == '{"new": true}'
    assert is_fresh(cache, 7)
    assert stat.S_IMODE(cache.stat().st_mode) == FILE_MODE


@pytest.mark.asyncio
async def test_ensure_fresh_gunzips_compressed_download(tmp_path: Path) -> None:
    """Gzip payloads of .gz sources are stored decompressed."""
    xml = "<animetitles><anime aid=\"1\"/></animetitles>".encode()
    source = DataSource(url=TITLES_URL, cache=tmp_path / "sub" / "anime-titles.xml", max_age=7)

    with respx.mock:
        respx.get(TITLES_URL).mock(return_value=Response(200, content=gzip.compress(xml)))
        assert await ensure_fresh(source)

    assert source.cache.read_bytes() == xml
    assert not source.cache.with_name("anime-titles.xml.part").exists()


@pytest.mark.asyncio
async def test_ensure_fresh_keeps_already_inflated_payload(tmp_path: Path) -> None:
    """A .gz source served without the gzip layer is stored as is."""
    xml = b"<animetitles/>"
    source = DataSource(url=TITLES_URL, cache=tmp_path / "anime-titles.xml", max_age=7)

    with respx.mock:
        respx.get(TITLES_URL).mock(return_value=Response(200, content=xml))
        assert await ensure_fresh(source)

    assert source.cache.read_bytes() == xml


@pytest.mark.asyncio
async def test_ensure_fresh_failure_keeps_stale_copy(tmp_path: Path) -> None:
    """A failed refresh reports False and leaves the previous copy intact."""
    cache = tmp_path / "mapping.json"
    cache.write_text('{"old": true}')
    _age(cache, 30)
    source = DataSource(url=JSON_URL, cache=cache, max_age=7)

    with respx.mock:
        respx.get(JSON_URL).mock(return_value=Response(503))
        assert not await ensure_fresh(source)

    assert cache.read_text() == '{"old": true}'
    assert not cache.with_name("mapping.json.part").exists()


@pytest.mark.asyncio
async def test_ensure_fresh_network_error_without_copy(tmp_path: Path) -> None:
    """A transport error with nothing cached reports False."""
    source = DataSource(url=JSON_URL, cache=tmp_path / "mapping.json", max_age=7)

    with respx.mock:
        respx.get(JSON_URL).mock(side_effect=httpx.ConnectError("offline"))
        assert not await ensure_fresh(source)

    assert not source.cache.exists()


@pytest.mark.asyncio
async def test_ensure_fresh_reuses_given_client(tmp_path: Path) -> None:
    """A caller-supplied client is used for the download."""
    source = DataSource(url=JSON_URL, cache=tmp_path / "mapping.json", max_age=7)

    with respx.mock:
        route = respx.get(JSON_URL).mock(return_value=Response(200, text="{}"))
        async with httpx.AsyncClient() as client:
            assert await ensure_fresh(source, client=client)
        assert route.call_count == 1


def _inflate(inflater: StreamInflater, payload: bytes, size: int) -> bytes:
    chunks = [payload[i : i + size] for i in range(0, len(payload), size)]
    return b"".join(inflater.feed(chunk) for chunk in chunks) + inflater.flush()


@pytest.mark.parametrize("size", [1, 2, 7, 4096])
def test_stream_inflater_any_chunking(size: int) -> None:
    """Gzip is detected even when the first chunk is a single byte."""
    xml = b"<animetitles><anime aid=\"1\"/></animetitles>"
    assert _inflate(StreamInflater(), gzip.compress(xml), size) == xml
    assert _inflate(StreamInflater(), xml, size) == xml


def test_stream_inflater_short_and_disabled_payloads() -> None:
    """Payloads shorter than the magic, or disabled inflaters, pass through."""
    assert _inflate(StreamInflater(), b"x", 1) == b"x"
    assert _inflate(StreamInflater(), b"", 1) == b""
    compressed = gzip.compress(b"data")
    assert _inflate(StreamInflater(enabled=False), compressed, 1) == compressed


def test_data_source_compressed() -> None:
    """Only .gz URLs are treated as compressed."""
    assert DataSource(url=TITLES_URL, cache=Path("x"), max_age=1).compressed
    assert not DataSource(url=JSON_URL, cache=Path("x"), max_age=1).compressed


def test_metadata_cache_round_trip(tmp_path: Path) -> None:
    """Stored records are returned while fresh and skipped when forced."""
    cache = MetadataCache(tmp_path, max_age=90)
    path = cache.store(1, {"id": 1, "type": "TV Series"})

    assert path == tmp_path / "anidb" / "1.json"
    assert stat.S_IMODE(path.stat().st_mode) == FILE_MODE
    assert cache.load(1) == {"id": 1, "type": "TV Series"}
    assert cache.load(1, force=True) is None
    assert cache.load(2) is None


def test_metadata_cache_stale_record(tmp_path: Path) -> None:
    """Expired records are only available through load_stale."""
    cache = MetadataCache(tmp_path, max_age=90)
    path = cache.store(1, {"id": 1})
    _age(path, 91)

    assert cache.load(1) is None
    assert cache.load_stale(1) == {"id": 1}
    assert cache.load_stale(2) is None


def test_metadata_cache_unreadable_record(tmp_path: Path) -> None:
    """A corrupt cache file is treated as missing."""
    cache = MetadataCache(tmp_path, max_age=90)
    cache.directory.mkdir(parents=True)
    cache.path_for(1).write_text("{not json")
    assert cache.load(1) is None
    assert cache.load_stale(1) is None
