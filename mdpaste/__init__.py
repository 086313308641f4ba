"""Markdown to paste-ready HTML with managed image assets and diagrams."""

__version__ = "0.1.0"
