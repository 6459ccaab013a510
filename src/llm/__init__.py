# src/llm/__init__.py — v1
"""Model client contract, adapters, retry and structured output."""
