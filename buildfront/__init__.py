"""CMake build front end: maps build actions onto generator, build tool and test runner commands."""
from __future__ import annotations

from .cli import main

__all__ = ["main"]
