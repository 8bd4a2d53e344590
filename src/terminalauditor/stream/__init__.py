"""Output stream segmentation."""

from .chunker import Chunker, ChunkerStats

__all__ = ["Chunker", "ChunkerStats"]
