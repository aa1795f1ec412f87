"""File-backed, TTL-gated cache for remote datasets and metadata records.

Two kinds of artifacts live under the cache root:

* Bulk datasets (the AniDB title dump, the community id mapping) described by
  a :class:`DataSource` and refreshed with :func:`ensure_fresh`.
* Per-anime metadata records, one JSON file per AniDB id, handled by
  :class:`MetadataCache`.

Freshness is always ``(now - mtime) < max_age`` with ``max_age`` in days. A
failed refresh never removes the previous copy, so callers may fall back to
stale data.
"""

import json
import logging
import os
import time
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
DIR_MODE = 0o750
FILE_MODE = 0o660
GZIP_MAGIC = b"\x1f\x8b"
DOWNLOAD_TIMEOUT = 60.0


@dataclass(frozen=True)
class DataSource:
    """A remote resource mirrored to a local file."""

    url: str
    cache: Path
    max_age: float
    """Maximum age in days before the local copy is refetched."""

    @property
    def compressed(self) -> bool:
        """Whether the remote resource is a gzip file."""
        return self.url.endswith(".gz")


class StreamInflater:
    """Gunzips a streamed payload only if it starts with the gzip magic.

    Servers may already have removed the gzip layer through Content-Encoding,
    so chunks are held back until enough bytes arrived to tell.
    """

    def __init__(self, enabled: bool = True) -> None:
        self._head = b""
        self._decided = not enabled
        self._decompressor: Optional[Any] = None

    def feed(self, chunk: bytes) -> bytes:
        """Return the output for *chunk*; empty while still undecided."""
        if not self._decided:
            self._head += chunk
            if len(self._head) < len(GZIP_MAGIC):
                return b""
            self._decided = True
            if self._head.startswith(GZIP_MAGIC):
                self._decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
            chunk, self._head = self._head, b""
        return self._decompressor.decompress(chunk) if self._decompressor else chunk

    def flush(self) -> bytes:
        """Return whatever is still buffered at the end of the stream."""
        if self._decompressor is not None:
            return self._decompressor.flush()
        head, self._head = self._head, b""
        return head


def cache_age_days(path: Path, now: Optional[float] = None) -> Optional[float]:
    """Return the age of *path* in days, or None if it does not exist."""
    try:
        mtime = path.stat().st_mtime
    except FileNotFoundError:
        return None
    current = time.time() if now is None else now
    return (current - mtime) / SECONDS_PER_DAY


def is_fresh(path: Path, max_age: float, now: Optional[float] = None) -> bool:
    """Return True if *path* exists and is younger than *max_age* days."""
    age = cache_age_days(path, now)
    return age is not None and age < max_age


async def ensure_fresh(
    source: DataSource,
    *,
    client: Optional[httpx.AsyncClient] = None,
    now: Optional[float] = None,
) -> bool:
    """Make sure the local copy of *source* is fresh, downloading it if needed.

    The download is streamed into a sibling ``.part`` file which replaces the
    cache file only after it has been completely written, so an interrupted
    transfer leaves any previous copy untouched.

    Args:
        source: The data source to refresh.
        client: Optional HTTP client to reuse; a private one is created otherwise.
        now: Override for the current time (epoch seconds).

    Returns:
        True if a fresh local copy exists afterwards, False if the refresh
        failed.
    """
    if is_fresh(source.cache, source.max_age, now):
        logger.debug("Cache hit for %s (%s)", source.url, source.cache)
        return True

    partial = source.cache.with_name(source.cache.name + ".part")
    try:
        source.cache.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
        if client is None:
            async with httpx.AsyncClient(timeout=DOWNLOAD_TIMEOUT) as own_client:
                await _download(own_client, source, partial)
        else:
            await _download(client, source, partial)
        os.chmod(partial, FILE_MODE)
        os.replace(partial, source.cache)
    except (httpx.HTTPError, OSError, zlib.error) as exc:
        logger.warning("Failed to refresh %s: %s", source.url, exc)
        partial.unlink(missing_ok=True)
        return False

    logger.info("Refreshed %s", source.cache)
    return True


async def _download(client: httpx.AsyncClient, source: DataSource, target: Path) -> None:
    """Stream *source* into *target*, gunzipping compressed payloads."""
    async with client.stream("GET", source.url, follow_redirects=True) as response:
        response.raise_for_status()
        inflater = StreamInflater(enabled=source.compressed)
        with target.open("wb") as fh:
            async for chunk in response.aiter_bytes():
                fh.write(inflater.feed(chunk))
            fh.write(inflater.flush())
            fh.flush()
            os.fsync(fh.fileno())


class MetadataCache:
    """One JSON document per AniDB id under ``<root>/anidb``."""

    def __init__(self, root: Path, max_age: float) -> None:
        """Initialize the cache rooted at *root* with a TTL of *max_age* days."""
        self.directory = root / "anidb"
        self.max_age = max_age

    def path_for(self, aid: int) -> Path:
        """Return the cache file for *aid*."""
        return self.directory / f"{aid}.json"

    def load(
        self, aid: int, *, force: bool = False, now: Optional[float] = None
    ) -> Optional[dict[str, Any]]:
        """Return the cached record for *aid* if fresh.

        Args:
            aid: AniDB anime id.
            force: Treat the cache as stale regardless of its age.
            now: Override for the current time (epoch seconds).

        Returns:
            The cached JSON document, or None if missing, stale, forced or
            unreadable.
        """
        path = self.path_for(aid)
        if force or not is_fresh(path, self.max_age, now):
            return None
        return self._read(path)

    def load_stale(self, aid: int) -> Optional[dict[str, Any]]:
        """Return the cached record for *aid* regardless of its age."""
        path = self.path_for(aid)
        if not path.exists():
            return None
        return self._read(path)

    def store(self, aid: int, data: dict[str, Any]) -> Path:
        """Write *data* as the cached record for *aid* and return its path."""
        self.directory.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
        path = self.path_for(aid)
        with path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, ensure_ascii=False)
        os.chmod(path, FILE_MODE)
        return path

    @staticmethod
    def _read(path: Path) -> Optional[dict[str, Any]]:
        try:
            with path.open(encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable metadata cache %s: %s", path, exc)
            return None
