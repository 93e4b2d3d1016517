"""Image-to-catalog furniture search: vision analysis, embeddings, and ranking."""

__version__ = "0.1.0"
