"""External source adapters, payload schemas and the shared HTTP executor."""
