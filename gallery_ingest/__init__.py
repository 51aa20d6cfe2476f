"""Gallery Ingest: gallery and event ingestion pipeline."""

__version__ = "0.1.0"
