# src/credentials/__init__.py — v1
"""Credential store contract and implementations."""
