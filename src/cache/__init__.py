# src/cache/__init__.py — v1
"""In-process analysis cache."""
