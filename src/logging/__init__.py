# src/logging/__init__.py — v1
"""Structured logging with per-item context."""
