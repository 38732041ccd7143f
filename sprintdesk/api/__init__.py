"""Data access layer: one module per remote table or service."""
