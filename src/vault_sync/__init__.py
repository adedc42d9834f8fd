"""Bidirectional sync between project documentation and an Obsidian-style vault."""

__version__ = "0.1.0"
