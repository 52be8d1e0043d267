"""CCAL — Claude Code in a local Docker container, with stdin credential handoff."""

__version__ = "0.1.0"
