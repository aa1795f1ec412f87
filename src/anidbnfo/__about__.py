# SPDX-FileCopyrightText: 2025-present anidbnfo contributors
#
# SPDX-License-Identifier: MIT
__version__ = "1.0.0"
