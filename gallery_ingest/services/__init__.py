"""External service clients for Gallery Ingest."""
