# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Snippetbox: share short text snippets that expire."""

__version__ = "0.1.0"
