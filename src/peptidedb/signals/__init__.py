"""Sentiment and signal scoring for social evidence."""
