# SPDX-FileCopyrightText: 2025-present anidbnfo contributors
#
# SPDX-License-Identifier: MIT

"""anidbnfo - AniDB identity resolver and episode binder for NFO exporters."""

from anidbnfo.__about__ import __version__

__all__ = ["__version__"]
