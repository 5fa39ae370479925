# File: utils/__init__.py
"""Pure Python utilities for the household scheduling core.

This module contains pure functions with no dependency on the engines or the
data model, so they can be unit tested in isolation.

Submodules:
    - dt_utils: Date/time parsing, formatting, timezone and calendar arithmetic

Usage:
    from . import dt_utils
    from .dt_utils import as_utc
"""

from . import dt_utils

__all__ = ["dt_utils"]
