# src/__init__.py — v1
"""scriptconveyor — staged generative pipeline for short-video scripts."""

from scriptconveyor.version import __version__

__all__ = ["__version__"]
