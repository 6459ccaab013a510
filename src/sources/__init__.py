# src/sources/__init__.py — v1
"""Source provider contract and the in-memory provider."""
