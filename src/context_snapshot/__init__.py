"""Snapshot a project's source tree into a flat context bundle for an LLM."""

__version__ = "0.3.0"
