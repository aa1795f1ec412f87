"""AniList GraphQL client for anime search.

This module provides access to the AniList GraphQL API, used to link AniDB
ids to AniList ids.
"""

from anidbnfo.metadata.clients.anilist.client import AniListClient

__all__ = ["AniListClient"]
