# src/pipeline/plugin_kit/__init__.py — v1
"""Stage interface and stage result models."""
