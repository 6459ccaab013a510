# src/storage/__init__.py — v1
"""Durable sqlite stores for items, artifacts and owners."""
