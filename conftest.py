"""Configure pytest for anidbnfo."""

import os
import sys
from pathlib import Path

import pytest

root_dir = Path(__file__).parent

# Make the src layout importable without an editable install
src_path = str(root_dir / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

CREDENTIAL_ENV_VARS = (
    "ANIDBNFO_ANIDB_CLIENT",
    "ANIDBNFO_ANIDB_CLIENT_VERSION",
    "ANIDBNFO_ANILIST_TOKEN",
    "ANIDBNFO_TMDB_API_KEY",
)


@pytest.fixture(autouse=True)
def _no_credentials(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's own catalog credentials out of every test."""
    for name in CREDENTIAL_ENV_VARS:
        if name in os.environ:
            monkeypatch.delenv(name)
