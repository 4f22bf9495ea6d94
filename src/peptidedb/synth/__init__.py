"""Deterministic content synthesis from collected source evidence."""
