# src/pipeline/__init__.py — v1
"""Stage plan, orchestrator, revision forker, controller and workers."""
