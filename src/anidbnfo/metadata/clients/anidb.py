"""AniDB HTTP API client.

Fetches the full metadata record of one anime (titles, dates, episodes) from
the AniDB HTTP API and keeps it in the per-anime metadata cache. AniDB bans
clients that hammer the API, so cached records are reused for a long TTL
(``cache.anidb_age``, 90 days by default) unless a refresh is forced.

API reference: https://wiki.anidb.net/HTTP_API_Definition
"""

import gzip
import logging
import xml.etree.ElementTree as ET
from typing import Optional

import httpx
from pydantic import ValidationError

from anidbnfo.errors import (
    AccessDenied,
    ClientMisconfigured,
    DataSourceUnavailable,
    ParseFailure,
)
from anidbnfo.metadata.cache import GZIP_MAGIC, MetadataCache
from anidbnfo.metadata.models import (
    AnimeMetadata,
    EpisodeCategory,
    EpisodeRecord,
    TitleType,
    TitleVariant,
)
from anidbnfo.utils.config import ExporterConfig

logger = logging.getLogger(__name__)

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
PICTURE_BASE_URL = "https://cdn.anidb.net/images/main/"
PROTOCOL_VERSION = 1
REGISTER_HINT = (
    "Please register a HTTP client on anidb and run 'configure' "
    "with --anidb-client and --anidb-version!"
)


class AniDBClient:
    """Cached access to ``request=anime`` of the AniDB HTTP API."""

    def __init__(
        self,
        client_name: Optional[str],
        client_version: Optional[int],
        cache: MetadataCache,
        *,
        url: str = "http://api.anidb.net:9001/httpapi",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the client.

        Args:
            client_name: Registered AniDB HTTP client name.
            client_version: Registered AniDB HTTP client version.
            cache: Per-anime metadata cache.
            url: AniDB HTTP API endpoint.
            client: Optional HTTP client to reuse.
        """
        self.client_name = client_name
        self.client_version = client_version
        self.cache = cache
        self.url = url
        self._client = client

    @classmethod
    def from_config(cls, config: ExporterConfig) -> "AniDBClient":
        """Build a client from the ``[anidb]`` and ``[cache]`` sections."""
        return cls(
            client_name=config.anidb.client.name,
            client_version=config.anidb.client.version,
            cache=MetadataCache(config.cache.path, config.cache.anidb_age),
            url=config.anidb.url,
        )

    def __str__(self) -> str:
        return "AniDBClient"

    @property
    def configured(self) -> bool:
        """Whether a client registration is available."""
        return bool(self.client_name) and self.client_version is not None

    async def anime(self, aid: int, *, force: bool = False) -> Optional[AnimeMetadata]:
        """Return the metadata record of *aid*.

        Args:
            aid: AniDB anime id.
            force: Bypass the cache freshness check.

        Returns:
            The metadata record, or None if AniDB does not know *aid*.

        Raises:
            ClientMisconfigured: If no client registration is configured or
                AniDB rejects it.
            AccessDenied: If AniDB banned the client.
            DataSourceUnavailable: If the API is unreachable and nothing is
                cached.
        """
        cached = self.cache.load(aid, force=force)
        if cached is not None:
            try:
                return AnimeMetadata.model_validate(cached)
            except ValidationError as exc:
                logger.warning("Refetching invalid cached record for aid %d: %s", aid, exc)

        if not self.configured:
            raise ClientMisconfigured("anidb", REGISTER_HINT)

        try:
            payload = await self._fetch(aid)
        except (httpx.HTTPError, OSError) as exc:
            stale = self.cache.load_stale(aid)
            if stale is not None:
                logger.warning("AniDB unreachable (%s), using stale record for aid %d", exc, aid)
                return AnimeMetadata.model_validate(stale)
            raise DataSourceUnavailable(self.url, str(exc)) from exc

        metadata = parse_anime_xml(payload)
        if metadata is None:
            return None
        self.cache.store(aid, metadata.model_dump(mode="json"))
        return metadata

    async def _fetch(self, aid: int) -> bytes:
        params = {
            "request": "anime",
            "client": self.client_name,
            "clientver": self.client_version,
            "protover": PROTOCOL_VERSION,
            "aid": aid,
        }
        if self._client is None:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(self.url, params=params)
        else:
            response = await self._client.get(self.url, params=params, timeout=30.0)
        response.raise_for_status()
        content = response.content
        # AniDB always gzips; httpx only inflates it when Content-Encoding says so.
        if content.startswith(GZIP_MAGIC):
            content = gzip.decompress(content)
        return content


def poster_url(picture: Optional[str]) -> Optional[str]:
    """Return the CDN URL for an AniDB picture file name."""
    if not picture:
        return None
    return PICTURE_BASE_URL + picture


def parse_anime_xml(payload: bytes | str) -> Optional[AnimeMetadata]:
    """Parse a ``request=anime`` response into an AnimeMetadata record.

    Returns:
        The record, or None for AniDB's "No such anime" error.

    Raises:
        ClientMisconfigured: On AniDB's client registration errors.
        AccessDenied: If the client is banned.
        DataSourceUnavailable: On any other AniDB error response.
        ParseFailure: If the document is not a valid anime record.
    """
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as exc:
        raise ParseFailure("AniDB anime record", str(exc)) from exc

    if root.tag == "error":
        message = (root.text or "").strip()
        lowered = message.lower()
        if "no such anime" in lowered:
            return None
        if "client" in lowered and ("missing" in lowered or "invalid" in lowered):
            raise ClientMisconfigured("anidb", REGISTER_HINT)
        if "banned" in lowered:
            raise AccessDenied("anidb", message)
        raise DataSourceUnavailable("anidb", message or "unknown error")

    if root.tag != "anime":
        raise ParseFailure("AniDB anime record", f"unexpected root <{root.tag}>")

    try:
        return AnimeMetadata(
            id=int(root.attrib["id"]),
            type=_text(root, "type"),
            episode_count=_int(_text(root, "episodecount")),
            start_date=_text(root, "startdate"),
            end_date=_text(root, "enddate"),
            restricted=root.get("restricted", "false").lower() == "true",
            description=_text(root, "description"),
            picture=_text(root, "picture"),
            url=_text(root, "url"),
            titles=[_parse_title(node) for node in root.findall("titles/title")],
            episodes=[_parse_episode(node) for node in root.findall("episodes/episode")],
        )
    except (KeyError, ValueError, ValidationError) as exc:
        raise ParseFailure("AniDB anime record", str(exc)) from exc


def _parse_title(node: ET.Element) -> TitleVariant:
    tag = node.get("type")
    return TitleVariant(
        title=(node.text or "").strip(),
        type=TitleType.from_tag(tag) if tag else None,
        language=node.get(XML_LANG) or "",
    )


def _parse_episode(node: ET.Element) -> EpisodeRecord:
    epno = node.find("epno")
    if epno is None or not (epno.text or "").strip():
        raise ValueError(f"episode {node.get('id')} has no number")
    number = epno.text.strip()
    code = epno.get("type")
    if code is not None:
        category = EpisodeCategory(int(code))
    else:
        category = EpisodeCategory.from_prefix(number[0] if not number[0].isdigit() else "")
    return EpisodeRecord(
        id=int(node.attrib["id"]),
        number=number,
        category=category,
        air_date=_text(node, "airdate"),
        length=_int(_text(node, "length")),
        summary=_text(node, "summary"),
        titles=[_parse_title(title) for title in node.findall("title")],
    )


def _text(node: ET.Element, path: str) -> Optional[str]:
    child = node.find(path)
    if child is None or child.text is None:
        return None
    return child.text.strip() or None


def _int(value: Optional[str]) -> Optional[int]:
    return int(value) if value is not None else None
