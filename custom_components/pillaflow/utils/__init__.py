# File: utils/__init__.py
"""Pure Python utilities for Pillaflow.

This module contains pure Python functions with ZERO Home Assistant dependencies.
All functions here can be unit tested without Home Assistant mocking.

Submodules:
    - dt_utils: Day keys, time-of-day parsing, date/time combination
    - math_utils: Numeric coercion for loosely typed records

Usage:
    from . import dt_utils
    from .math_utils import as_number
"""

from . import dt_utils, math_utils

__all__ = ["dt_utils", "math_utils"]
