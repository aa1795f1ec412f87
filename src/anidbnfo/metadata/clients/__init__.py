"""API clients for AniDB and the secondary search catalogs."""

from anidbnfo.metadata.clients.anidb import AniDBClient
from anidbnfo.metadata.clients.anilist import AniListClient
from anidbnfo.metadata.clients.tmdb import TMDBClient

__all__ = ["AniDBClient", "AniListClient", "TMDBClient"]
