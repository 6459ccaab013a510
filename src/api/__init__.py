# src/api/__init__.py — v1
"""Boundary service facade and its result models."""
