"""Base abstraction for secondary catalog clients.

Secondary catalogs (AniList, TMDB) are only ever searched by title; their ids
are linked to AniDB ids by :class:`anidbnfo.core.resolver.CrossReferenceResolver`.
All catalog clients inherit from :class:`SearchCatalog`.
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Optional

from anidbnfo.metadata.models import SearchCandidate


class SearchCatalog(ABC):
    """Abstract base class for searchable secondary catalogs.

    Subclasses declare which :class:`~anidbnfo.metadata.models.AnimeIDs` field
    they fill and, optionally, a category every accepted candidate must
    carry.
    """

    name: ClassVar[str]
    id_field: ClassVar[str]
    required_category: ClassVar[Optional[str]] = None

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether credentials for this catalog were supplied."""
        raise NotImplementedError

    @abstractmethod
    async def search(self, title: str) -> list[SearchCandidate]:
        """Search the catalog by title.

        Args:
            title: The title to search for.

        Returns:
            Candidates in the catalog's relevance order; empty on no hits or
            transient errors.

        Raises:
            AccessDenied: If the catalog rejects the credentials.
        """
        raise NotImplementedError

    def __str__(self) -> str:
        return self.name
