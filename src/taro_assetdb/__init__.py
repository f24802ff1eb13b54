"""Top-level package for the taro asset store.

The package materializes imported assets, their genesis information, group
keys and script keys into a relational database.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
