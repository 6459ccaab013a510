# src/pipeline/agents/__init__.py — v1
"""Analyst fan-out agents and the synthesizer."""
