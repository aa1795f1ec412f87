"""Title catalog built from the AniDB ``anime-titles.xml`` dump.

The dump holds one ``<anime aid="...">`` element per AniDB id with any number
of ``<title type="..." xml:lang="...">`` children. Only ``official`` and
``main`` titles are kept; the rest are noise for matching purposes.
"""

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from pathlib import Path

from pydantic import ValidationError

from anidbnfo.metadata.models import TitleType, TitleVariant

logger = logging.getLogger(__name__)

XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
KEPT_TYPES = frozenset({TitleType.OFFICIAL, TitleType.MAIN})


class TitleCatalog:
    """Ordered title variants per AniDB id."""

    def __init__(self) -> None:
        """Initialize an empty catalog."""
        self._titles: dict[int, list[TitleVariant]] = {}

    def __len__(self) -> int:
        return len(self._titles)

    def __contains__(self, aid: object) -> bool:
        return aid in self._titles

    def ids(self) -> list[int]:
        """Return every AniDB id in source-file order."""
        return list(self._titles)

    def titles(self, aid: int) -> list[TitleVariant]:
        """Return the title variants of *aid* (empty if unknown)."""
        return list(self._titles.get(aid, []))

    def set_titles(self, aid: int, titles: list[TitleVariant]) -> None:
        """Replace the variants stored for *aid*."""
        self._titles[aid] = list(titles)

    def pool(self) -> Iterator[tuple[int, str]]:
        """Yield ``(aid, title)`` pairs in catalog order for fuzzy matching."""
        for aid, variants in self._titles.items():
            for variant in variants:
                yield aid, variant.title

    def load(self, path: Path) -> bool:
        """Parse the title dump at *path* into the catalog.

        Returns:
            True on success. Failures are logged and reported as False; the
            catalog keeps whatever was loaded before.
        """
        try:
            root = ET.parse(path).getroot()
        except (OSError, ET.ParseError) as exc:
            logger.error("Failed to parse title catalog %s: %s", path, exc)
            return False

        parsed: dict[int, list[TitleVariant]] = {}
        try:
            for anime in root.iter("anime"):
                aid = int(anime.attrib["aid"])
                parsed[aid] = [
                    variant
                    for variant in map(_parse_title, anime.iter("title"))
                    if variant.type in KEPT_TYPES
                ]
        except (KeyError, ValueError, ValidationError) as exc:
            logger.error("Malformed entry in title catalog %s: %s", path, exc)
            return False

        self._titles.update(parsed)
        logger.info("Loaded %d anime from %s", len(parsed), path)
        return True


def _parse_title(node: ET.Element) -> TitleVariant:
    return TitleVariant(
        title=(node.text or "").strip(),
        type=TitleType.from_tag(node.get("type")),
        language=node.get(XML_LANG) or node.get("lang") or "",
    )
