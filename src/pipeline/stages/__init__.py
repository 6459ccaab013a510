# src/pipeline/stages/__init__.py — v1
"""The eight stages of the default plan."""
