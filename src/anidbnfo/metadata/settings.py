"""Settings loader for catalog credentials.

Loads AniDB client registration, the AniList token and the TMDB API key from
environment variables or a .env file. Values found here take precedence over
the TOML config file.

Recognised keys:
- ANIDBNFO_ANIDB_CLIENT
- ANIDBNFO_ANIDB_CLIENT_VERSION
- ANIDBNFO_ANILIST_TOKEN (optional, enables the AniList resolver)
- ANIDBNFO_TMDB_API_KEY (optional, enables the TMDB resolver)
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Catalog credentials from the environment."""

    ANIDB_CLIENT: str | None = None
    ANIDB_CLIENT_VERSION: int | None = None
    ANILIST_TOKEN: str | None = None
    TMDB_API_KEY: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="ANIDBNFO_", env_file=".env", extra="ignore"
    )
