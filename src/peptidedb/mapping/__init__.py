"""Name normalization and search-term helpers."""
