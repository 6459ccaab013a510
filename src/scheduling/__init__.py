# src/scheduling/__init__.py — v1
"""Periodic jobs."""
