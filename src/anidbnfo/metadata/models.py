"""Data models for anime identities and metadata.

This module defines the typed records that cross the parse-and-validate
boundary of anidbnfo.
- AnimeIDs is the canonical identity of an anime across AniDB, AniList, TMDB
  and TVDB.
- TitleVariant, AnimeMetadata and EpisodeRecord mirror what AniDB publishes
  in its title dump and HTTP API.
- EpisodeFile, BoundEpisode and EpisodeGroup describe episode files on disk
  and the canonical records bound to them.
- ResolvedAnime is the hand-off record for NFO renderers.

Design:
- Loosely typed XML/JSON is validated into these models once; everything
  downstream works on typed attributes.
- Enums carry AniDB's own codes so that numbering can be computed from them.
"""

from enum import Enum, IntEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class TitleType(str, Enum):
    """AniDB title types. Only OFFICIAL and MAIN survive catalog ingestion."""

    OFFICIAL = "official"
    MAIN = "main"
    OTHER = "other"

    @classmethod
    def from_tag(cls, tag: str | None) -> "TitleType":
        """Map a raw AniDB ``type`` attribute onto a TitleType.

        AniDB also emits ``syn`` and ``short``; those are folded into OTHER.
        """
        if tag == cls.OFFICIAL.value:
            return cls.OFFICIAL
        if tag == cls.MAIN.value:
            return cls.MAIN
        return cls.OTHER


class EpisodeCategory(IntEnum):
    """AniDB episode types, valued with AniDB's ``epno type`` code."""

    REGULAR = 1
    SPECIAL = 2
    CREDIT = 3
    TRAILER = 4
    PARODY = 5
    OTHER = 6

    @classmethod
    def from_prefix(cls, prefix: str) -> "EpisodeCategory":
        """Return the category for an episode-number prefix letter."""
        for category, letter in _CATEGORY_PREFIXES.items():
            if letter == prefix.upper():
                return category
        return cls.REGULAR


_CATEGORY_PREFIXES: dict[EpisodeCategory, str] = {
    EpisodeCategory.REGULAR: "",
    EpisodeCategory.SPECIAL: "S",
    EpisodeCategory.CREDIT: "C",
    EpisodeCategory.TRAILER: "T",
    EpisodeCategory.PARODY: "P",
    EpisodeCategory.OTHER: "O",
}


class TitleVariant(BaseModel):
    """One typed, localized title of an anime or episode."""

    model_config = ConfigDict(frozen=True)

    title: str
    type: TitleType | None = None
    language: str
    year: int | None = None
    """Year split off a ``Title (YYYY)`` variant, if this is a synthetic variant."""


class AnimeIDs(BaseModel):
    """Cross-catalog identity of one anime, keyed by its AniDB id.

    Every field but ``anidb`` starts out unset and is filled by the community
    mapping, the local override store or the cross-reference resolvers.
    """

    anidb: int
    anilist: int | None = None
    tmdb: int | None = None
    tvdb: int | None = None
    tvdb_season: int | None = None


class EpisodeRecord(BaseModel):
    """Canonical AniDB episode entry."""

    model_config = ConfigDict(frozen=True)

    id: int
    number: str
    """Episode number token, e.g. ``"12"`` or ``"S2"``."""
    category: EpisodeCategory = EpisodeCategory.REGULAR
    air_date: str | None = None
    length: int | None = None
    summary: str | None = None
    titles: list[TitleVariant] = Field(default_factory=list)

    def title_for(self, language: str) -> str | None:
        """Return the first title in *language*, if any."""
        for variant in self.titles:
            if variant.language == language:
                return variant.title
        return None


class AnimeMetadata(BaseModel):
    """Per-anime metadata record as published by the AniDB HTTP API."""

    id: int
    type: str | None = None
    episode_count: int | None = None
    start_date: str | None = None
    end_date: str | None = None
    restricted: bool = False
    description: str | None = None
    picture: str | None = None
    url: str | None = None
    titles: list[TitleVariant] = Field(default_factory=list)
    episodes: list[EpisodeRecord] = Field(default_factory=list)


class SearchCandidate(BaseModel):
    """One hit returned by a secondary catalog search."""

    catalog_id: int
    native_title: str | None = None
    titles: list[str] = Field(default_factory=list)
    """Romanized and translated titles, in the catalog's preference order."""
    year: int | None = None
    categories: list[str] = Field(default_factory=list)


class EpisodeFile(BaseModel):
    """An episode file on disk and the episode range its name claims."""

    path: Path
    episode_start: str
    episode_end: str
    title: str


class BoundEpisode(BaseModel):
    """A canonical episode record with its display numbering computed."""

    record: EpisodeRecord
    season: int
    episode: int
    title: str
    original_title: str | None = None
    premiered: str | None = None


class EpisodeGroup(BaseModel):
    """All canonical episodes bound to a single file."""

    file: EpisodeFile
    episodes: list[BoundEpisode] = Field(default_factory=list)


class ResolvedAnime(BaseModel):
    """Fully resolved anime handed over to NFO renderers."""

    ids: AnimeIDs
    title: str
    original_title: str | None = None
    premiered: str | None = None
    restricted: bool = False
    poster: str | None = None
    overwrite_nfo: bool = False
    metadata: AnimeMetadata
    episodes: list[EpisodeGroup] = Field(default_factory=list)
