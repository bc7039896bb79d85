"""ctxpack - versioned behavioral context packs for AI coding agents."""

__version__ = "0.1.0"
