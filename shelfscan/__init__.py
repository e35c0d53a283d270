"""Relay service that reads bookshelf photos with a vision LLM and enriches titles via Google Books."""

__version__ = "1.0.0"
