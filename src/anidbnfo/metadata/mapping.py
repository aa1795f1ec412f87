"""Identity map from AniDB ids to AniList, TMDB and TVDB ids.

The map is built from three layers, highest precedence first:

1. The AniDB title dump, which establishes every known AniDB id (mandatory).
2. The community-curated Plex-Meta-Manager anime id mapping (best effort).
3. The local override store, which only fills fields still unset.

Cross-ids confirmed by a resolver are written back to the local override
store immediately, so that later runs do not have to search again.

Design:
- Merges are additive: an absent value never clears an existing one.
- The override store is a plain JSON file updated by an unlocked
  read-modify-write; it assumes a single writer process.
"""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from anidbnfo.core.fuzzy_matcher import FuzzyMatcher, normalize_title
from anidbnfo.errors import DataSourceUnavailable, ParseFailure
from anidbnfo.metadata.cache import DIR_MODE, FILE_MODE, DataSource, ensure_fresh
from anidbnfo.metadata.models import AnimeIDs, TitleVariant
from anidbnfo.metadata.titles import TitleCatalog
from anidbnfo.utils.config import ExporterConfig

logger = logging.getLogger(__name__)

ANIDB_TITLES_URL = "https://anidb.net/api/anime-titles.xml.gz"
COMMUNITY_MAPPING_URL = (
    "https://raw.githubusercontent.com/meisnate12/"
    "Plex-Meta-Manager-Anime-IDs/master/pmm_anime_ids.json"
)
TITLES_FILE = "anime-titles.xml"
COMMUNITY_FILE = "pmm_anime_ids.json"
OVERRIDES_FILE = "local_anime_ids.json"

# Fields the resolvers may confirm and persist.
OVERRIDE_FIELDS = ("anilist", "tmdb")

ANIDB_TAG_RE = re.compile(r"\[anidb-(?P<aid>\d+)\]")


class CommunityEntry(BaseModel):
    """One value of the community mapping document."""

    model_config = ConfigDict(extra="ignore")

    anilist_id: Optional[int] = None
    tvdb_id: Optional[int] = None
    tvdb_season: Optional[int] = None
    tmdb_show_id: Optional[int] = None


class OverrideEntry(BaseModel):
    """One value of the local override store."""

    model_config = ConfigDict(extra="ignore")

    anilist: Optional[int] = None
    tmdb: Optional[int] = None


class IdentityMap:
    """Owns the AniDB title catalog and the cross-reference table."""

    def __init__(
        self,
        cache_root: Path,
        max_age: float,
        matcher: Optional[FuzzyMatcher] = None,
    ) -> None:
        """Initialize an empty map backed by files under *cache_root*.

        Args:
            cache_root: Directory holding the datasets and the override store.
            max_age: TTL in days for the title dump and community mapping.
            matcher: Matcher for title lookups; case-sensitive by default.
        """
        self.catalog = TitleCatalog()
        self.matcher = matcher or FuzzyMatcher(case_sensitive=True)
        self.titles_source = DataSource(
            url=ANIDB_TITLES_URL, cache=cache_root / TITLES_FILE, max_age=max_age
        )
        self.community_source = DataSource(
            url=COMMUNITY_MAPPING_URL,
            cache=cache_root / COMMUNITY_FILE,
            max_age=max_age,
        )
        self.override_path = cache_root / OVERRIDES_FILE
        self._ids: dict[int, AnimeIDs] = {}

    @classmethod
    def from_config(cls, config: ExporterConfig) -> "IdentityMap":
        """Build a map using the cache and matching settings of *config*."""
        return cls(
            cache_root=config.cache.path,
            max_age=config.cache.mapping_age,
            matcher=FuzzyMatcher.from_config(config.matching, case_sensitive=True),
        )

    def __len__(self) -> int:
        return len(self._ids)

    def __str__(self) -> str:
        return "IdentityMap"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def from_id(self, aid: int) -> Optional[AnimeIDs]:
        """Return the identity record for *aid*, or None if unknown."""
        return self._ids.get(aid)

    def from_title(self, title: str) -> Optional[AnimeIDs]:
        """Identify an anime from a free-form title such as a directory name.

        An explicit ``[anidb-<aid>]`` tag wins; otherwise the title is fuzzy
        matched against every official and main title in the catalog.
        """
        tag = ANIDB_TAG_RE.search(title)
        if tag is not None:
            return self.from_id(int(tag.group("aid")))

        match = self.matcher.best_match(normalize_title(title), self.catalog.pool())
        if match is None:
            logger.debug("No catalog title close to %r", title)
            return None
        logger.debug(
            "Matched %r to aid %d via %r (distance %d)",
            title,
            match.key,
            match.title,
            match.distance,
        )
        return self.from_id(match.key)

    def titles_for(self, aid: int) -> list[TitleVariant]:
        """Return the official and main titles of *aid*."""
        return self.catalog.titles(aid)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def update(
        self,
        aid: int,
        anilist: Optional[int] = None,
        tmdb: Optional[int] = None,
        tvdb: Optional[int] = None,
        tvdb_season: Optional[int] = None,
    ) -> AnimeIDs:
        """Overwrite the provided fields of *aid*, creating the record if needed.

        Fields passed as None are left untouched; ``tvdb_season`` is only
        taken together with ``tvdb``.
        """
        ids = self._ids.get(aid)
        if ids is None:
            ids = AnimeIDs(anidb=aid)
            self._ids[aid] = ids
        if anilist is not None:
            ids.anilist = anilist
        if tmdb is not None:
            ids.tmdb = tmdb
        if tvdb is not None:
            ids.tvdb = tvdb
            if tvdb_season is not None:
                ids.tvdb_season = tvdb_season
        return ids

    def fill(self, aid: int, **fields: Optional[int]) -> AnimeIDs:
        """Set only those of *fields* that are still unset on *aid*."""
        ids = self._ids.get(aid)
        if ids is None:
            ids = AnimeIDs(anidb=aid)
            self._ids[aid] = ids
        for name, value in fields.items():
            if value is not None and getattr(ids, name) is None:
                setattr(ids, name, value)
        return ids

    def link(self, aid: int, field: str, value: int) -> AnimeIDs:
        """Record a confirmed cross-id in memory and in the override store."""
        if field not in OVERRIDE_FIELDS:
            raise ValueError(f"Unsupported override field: {field}")
        ids = self.update(aid, **{field: value})
        self.record_override(aid, field, value)
        return ids

    def record_override(self, aid: int, field: str, value: int) -> None:
        """Persist ``field = value`` for *aid* in the local override store.

        The store is re-read right before writing so that entries added since
        the refresh are preserved. A corrupt store is left untouched.
        """
        data: dict[str, Any] = {}
        if self.override_path.exists():
            try:
                data = json.loads(self.override_path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error(
                    "Not updating unreadable override store %s: %s",
                    self.override_path,
                    exc,
                )
                return
            if not isinstance(data, dict):
                logger.error("Not updating malformed override store %s", self.override_path)
                return

        entry = data.setdefault(str(aid), {})
        entry[field] = value

        self.override_path.parent.mkdir(parents=True, exist_ok=True, mode=DIR_MODE)
        with self.override_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
        os.chmod(self.override_path, FILE_MODE)
        logger.info("Stored %s=%d for aid %d in %s", field, value, aid, self.override_path)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------
    async def refresh(self, client: Optional[httpx.AsyncClient] = None) -> None:
        """Rebuild the map from all three layers.

        Raises:
            DataSourceUnavailable: If the title dump cannot be fetched and no
                local copy exists.
            ParseFailure: If the title dump cannot be parsed.
        """
        if not await ensure_fresh(self.titles_source, client=client):
            if not self.titles_source.cache.exists():
                raise DataSourceUnavailable(self.titles_source.url)
            logger.warning("Using stale title catalog %s", self.titles_source.cache)
        self.load_titles(self.titles_source.cache)

        fresh = await ensure_fresh(self.community_source, client=client)
        if fresh or self.community_source.cache.exists():
            try:
                self.merge_community(self.community_source.cache)
            except ParseFailure as exc:
                logger.warning("Continuing without community mapping: %s", exc)
        else:
            logger.warning(
                "Community mapping unavailable, continuing without it: %s",
                self.community_source.url,
            )

        try:
            self.merge_overrides()
        except ParseFailure as exc:
            logger.warning("Continuing without local overrides: %s", exc)

    def load_titles(self, path: Path) -> None:
        """Ingest the title dump and register every AniDB id it lists.

        Raises:
            ParseFailure: If the dump cannot be parsed.
        """
        if not self.catalog.load(path):
            raise ParseFailure(str(path), "title catalog is unusable")
        for aid in self.catalog.ids():
            if aid not in self._ids:
                self._ids[aid] = AnimeIDs(anidb=aid)

    def merge_community(self, path: Path) -> int:
        """Merge the community mapping at *path* via :meth:`update`.

        Returns:
            The number of entries merged. Invalid entries are skipped.

        Raises:
            ParseFailure: If the document is not a JSON object.
        """
        data = _read_json_object(path)
        merged = 0
        for key, value in data.items():
            try:
                aid = int(key)
                entry = CommunityEntry.model_validate(value)
            except (ValueError, ValidationError) as exc:
                logger.debug("Skipping community entry %r: %s", key, exc)
                continue
            self.update(
                aid,
                anilist=entry.anilist_id,
                tmdb=entry.tmdb_show_id,
                tvdb=entry.tvdb_id,
                tvdb_season=entry.tvdb_season,
            )
            merged += 1
        logger.info("Merged %d community mappings from %s", merged, path)
        return merged

    def merge_overrides(self, path: Optional[Path] = None) -> int:
        """Merge the local override store into still-unset fields.

        Returns:
            The number of entries merged (0 if the store does not exist).

        Raises:
            ParseFailure: If the store is not a JSON object.
        """
        target = path or self.override_path
        if not target.exists():
            return 0
        data = _read_json_object(target)
        merged = 0
        for key, value in data.items():
            try:
                aid = int(key)
                entry = OverrideEntry.model_validate(value)
            except (ValueError, ValidationError) as exc:
                logger.debug("Skipping override entry %r: %s", key, exc)
                continue
            self.fill(aid, anilist=entry.anilist, tmdb=entry.tmdb)
            merged += 1
        return merged


def _read_json_object(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ParseFailure(str(path), str(exc)) from exc
    if not isinstance(data, dict):
        raise ParseFailure(str(path), "expected a JSON object")
    return data
