"""Bind AniDB-named episode files to canonical episode records.

Files are expected to follow AniDB's default naming scheme::

    <anime> - <token> - <title> (<crc32>).<ext>
    <anime> - <token>-<token> - <title> (<crc32>).<ext>

where ``<token>`` is an episode number with an optional category prefix
(``S`` special, ``C`` credit, ``T`` trailer, ``P`` parody, ``O`` other).
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

from anidbnfo.errors import UnparseableFilename
from anidbnfo.metadata.models import (
    BoundEpisode,
    EpisodeCategory,
    EpisodeFile,
    EpisodeGroup,
    EpisodeRecord,
)

logger = logging.getLogger(__name__)

EPISODE_EXTENSIONS = {".mkv", ".mp4", ".ogm", ".avi"}

_TOKEN = r"[SCTPOE]?\d+"
SINGLE_EPISODE_RE = re.compile(
    rf"\s-\s(?P<episode>{_TOKEN})\s-\s(?P<title>.+)\.\w{{3}}$"
)
MULTI_EPISODE_RE = re.compile(
    rf"\s-\s(?P<start>{_TOKEN})-(?P<end>{_TOKEN})\s-\s(?P<title>.+)\.\w{{3}}$"
)
TOKEN_RE = re.compile(r"^(?P<prefix>[A-Z]?)(?P<number>\d+)$")
CRC32_RE = re.compile(r"\s*\([A-Za-z0-9]{8}\)\s*$")


def normalize_token(token: str) -> str:
    """Drop leading zeros from an episode token, keeping its prefix.

    ``"01"`` becomes ``"1"`` and ``"S01"`` becomes ``"S1"``. The ``E`` prefix
    some tools emit for regular episodes is dropped.
    """
    match = TOKEN_RE.match(token.upper())
    if not match:
        return token
    prefix = match.group("prefix")
    if prefix == "E":
        prefix = ""
    return f"{prefix}{int(match.group('number'))}"


def strip_checksum(title: str) -> str:
    """Remove a trailing ``(CRC32)`` tag from *title*."""
    return CRC32_RE.sub("", title).strip()


def parse_episode_filename(path: Path) -> EpisodeFile:
    """Parse an AniDB-style episode filename.

    Raises:
        UnparseableFilename: If the name matches neither grammar.
    """
    name = path.name
    match = MULTI_EPISODE_RE.search(name)
    if match:
        start, end = match.group("start"), match.group("end")
    else:
        match = SINGLE_EPISODE_RE.search(name)
        if not match:
            raise UnparseableFilename(name)
        start = end = match.group("episode")
    return EpisodeFile(
        path=path,
        episode_start=normalize_token(start),
        episode_end=normalize_token(end),
        title=strip_checksum(match.group("title")),
    )


def expand_range(start: str, end: str) -> List[str]:
    """Return every episode token from *start* to *end* inclusive.

    Only numeric ranges expand. A prefixed token such as ``S1`` is a unit of
    one, as is a descending range; both yield the start token alone.
    """
    if not (start.isdigit() and end.isdigit()):
        return [start]
    low, high = int(start), int(end)
    if high < low:
        return [start]
    return [str(number) for number in range(low, high + 1)]


def display_numbering(record: EpisodeRecord) -> tuple[int, int]:
    """Return ``(season, episode)`` as shown by media servers.

    Regular episodes live in season 1. Every other category lives in season 0
    with its number offset by ``category code * 100``, so specials, credits,
    trailers and parodies never collide.
    """
    if record.category == EpisodeCategory.REGULAR:
        return 1, int(record.number)
    digits = re.sub(r"^\D+", "", record.number)
    return 0, int(digits) + int(record.category) * 100


def premiered(date: Optional[str]) -> Optional[str]:
    """Normalize an AniDB date to ``YYYY-MM-DD``; month precision gets ``-01``."""
    if date and len(date) == 10:
        return date
    if date and len(date) == 7:
        return f"{date}-01"
    return None


class EpisodeBinder:
    """Groups canonical episode records by the files that contain them."""

    def __init__(self, records: Iterable[EpisodeRecord]) -> None:
        """Initialize the binder with the anime's canonical episodes."""
        self.records = list(records)

    def scan(self, anime_dir: Path) -> List[EpisodeFile]:
        """Parse every episode file directly inside *anime_dir*.

        Files with unknown extensions are ignored; unparseable names are
        logged and skipped.
        """
        files: List[EpisodeFile] = []
        for path in sorted(anime_dir.iterdir()):
            if path.suffix.lower() not in EPISODE_EXTENSIONS or not path.is_file():
                continue
            try:
                files.append(parse_episode_filename(path))
            except UnparseableFilename as exc:
                logger.warning("%s", exc)
        return files

    def bind(self, episode_file: EpisodeFile) -> EpisodeGroup:
        """Bind *episode_file* to every canonical record it covers."""
        group = EpisodeGroup(file=episode_file)
        for token in expand_range(episode_file.episode_start, episode_file.episode_end):
            for record in self.records:
                if record.number == token:
                    group.episodes.append(self._bound(record, episode_file))
        if not group.episodes:
            logger.warning("No canonical episode for %s", episode_file.path.name)
        return group

    def bind_all(self, anime_dir: Path) -> List[EpisodeGroup]:
        """Scan *anime_dir* and bind every parseable episode file."""
        return [self.bind(episode_file) for episode_file in self.scan(anime_dir)]

    @staticmethod
    def _bound(record: EpisodeRecord, episode_file: EpisodeFile) -> BoundEpisode:
        season, episode = display_numbering(record)
        return BoundEpisode(
            record=record,
            season=season,
            episode=episode,
            title=_clean(record.title_for("en") or episode_file.title),
            original_title=_clean(record.title_for("ja")),
            premiered=premiered(record.air_date),
        )


def _clean(title: Optional[str]) -> Optional[str]:
    # Backticks break NFO consumers; AniDB uses them as apostrophes.
    return title.replace("`", "'") if title is not None else None
