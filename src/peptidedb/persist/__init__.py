"""Persistence: idempotent writes, lookup cache and read-side views."""
