"""End-to-end resolution of an anime directory.

Runs the full pipeline for one directory: refresh the identity map, identify
the anime, link secondary catalog ids, fetch AniDB metadata and bind the
episode files. The result is a :class:`ResolvedAnime` ready for an NFO
renderer.
"""

import logging
from pathlib import Path
from typing import Optional

from anidbnfo.core.episode_binder import EpisodeBinder, premiered
from anidbnfo.core.fuzzy_matcher import FuzzyMatcher
from anidbnfo.core.resolver import CrossReferenceResolver
from anidbnfo.metadata.base import SearchCatalog
from anidbnfo.metadata.clients.anidb import AniDBClient, poster_url
from anidbnfo.metadata.clients.anilist import AniListClient
from anidbnfo.metadata.clients.tmdb import TMDBClient
from anidbnfo.metadata.mapping import IdentityMap
from anidbnfo.metadata.models import AnimeIDs, ResolvedAnime, TitleType, TitleVariant
from anidbnfo.utils.config import ExporterConfig

logger = logging.getLogger(__name__)


def display_title(titles: list[TitleVariant], fallback: str) -> str:
    """Return the main romanized title, or *fallback* if there is none."""
    for variant in titles:
        if variant.type == TitleType.MAIN and variant.language == "x-jat":
            return variant.title
    return fallback


def original_title(titles: list[TitleVariant]) -> Optional[str]:
    """Return the official Japanese title, if any."""
    for variant in titles:
        if variant.type == TitleType.OFFICIAL and variant.language == "ja":
            return variant.title
    return None


class ResolutionPipeline:
    """Wires the identity map, resolvers, AniDB client and episode binder."""

    def __init__(
        self,
        identity_map: IdentityMap,
        anidb: AniDBClient,
        catalogs: list[SearchCatalog],
        matcher: Optional[FuzzyMatcher] = None,
        *,
        fetch_poster: bool = False,
        overwrite_nfo: bool = False,
    ) -> None:
        """Initialize the pipeline.

        Args:
            identity_map: Identity map to refresh and query.
            anidb: Client for per-anime metadata.
            catalogs: Secondary catalogs to link, in resolution order.
            matcher: Case-folding matcher shared by the resolvers.
            fetch_poster: Include the AniDB poster URL in the result.
            overwrite_nfo: Tell renderers to replace existing NFO files.
        """
        self.identity_map = identity_map
        self.anidb = anidb
        self.resolvers = [
            CrossReferenceResolver(catalog, identity_map, matcher) for catalog in catalogs
        ]
        self.fetch_poster = fetch_poster
        self.overwrite_nfo = overwrite_nfo
        self._refreshed = False

    @classmethod
    def from_config(cls, config: ExporterConfig) -> "ResolutionPipeline":
        """Build the pipeline with every catalog described by *config*."""
        return cls(
            identity_map=IdentityMap.from_config(config),
            anidb=AniDBClient.from_config(config),
            catalogs=[
                AniListClient(config.anilist.token),
                TMDBClient(config.tmdb.api_key),
            ],
            matcher=FuzzyMatcher.from_config(config.matching, case_sensitive=False),
            fetch_poster=config.anidb.poster,
            overwrite_nfo=config.overwrite_nfo,
        )

    async def identify(
        self,
        anime_dir: Path,
        *,
        aid: Optional[int] = None,
        anilist_id: Optional[int] = None,
        tmdb_id: Optional[int] = None,
    ) -> Optional[AnimeIDs]:
        """Identify the anime stored in *anime_dir* and link its cross-ids.

        Explicit ids are trusted and recorded in the override store.

        Returns:
            The identity, or None if nothing matched.
        """
        if not self._refreshed:
            await self.identity_map.refresh()
            self._refreshed = True

        if aid is not None:
            ids = self.identity_map.from_id(aid)
            how = "--aid parameter"
        else:
            ids = self.identity_map.from_title(anime_dir.name)
            how = "title search"
        if ids is None:
            logger.info("%s: no AniDB match via %s", anime_dir.name, how)
            return None
        logger.info("%s: matched aid %d via %s", anime_dir.name, ids.anidb, how)

        if anilist_id is not None:
            self.identity_map.link(ids.anidb, "anilist", anilist_id)
        if tmdb_id is not None:
            self.identity_map.link(ids.anidb, "tmdb", tmdb_id)

        for resolver in self.resolvers:
            ids = await resolver.resolve(ids.anidb) or ids
        return ids

    async def run(
        self,
        anime_dir: Path,
        *,
        aid: Optional[int] = None,
        anilist_id: Optional[int] = None,
        tmdb_id: Optional[int] = None,
        force_update: bool = False,
    ) -> Optional[ResolvedAnime]:
        """Resolve *anime_dir* into a ResolvedAnime.

        Returns:
            The resolved anime, or None if it could not be identified or AniDB
            has no record for it.

        Raises:
            NotADirectoryError: If *anime_dir* is not a directory.
        """
        if not anime_dir.is_dir():
            raise NotADirectoryError(f"The path '{anime_dir}' does not exist or is not a directory!")

        ids = await self.identify(anime_dir, aid=aid, anilist_id=anilist_id, tmdb_id=tmdb_id)
        if ids is None:
            return None

        metadata = await self.anidb.anime(ids.anidb, force=force_update)
        if metadata is None:
            logger.warning("AniDB has no record for aid %d", ids.anidb)
            return None

        titles = metadata.titles or self.identity_map.titles_for(ids.anidb)
        title = display_title(titles, anime_dir.name).replace("`", "'")
        native = original_title(titles)

        binder = EpisodeBinder(metadata.episodes)
        return ResolvedAnime(
            ids=ids,
            title=title,
            original_title=native.replace("`", "'") if native else None,
            premiered=premiered(metadata.start_date),
            restricted=metadata.restricted,
            poster=poster_url(metadata.picture) if self.fetch_poster else None,
            overwrite_nfo=self.overwrite_nfo,
            metadata=metadata,
            episodes=binder.bind_all(anime_dir),
        )
