"""BigQuery table metadata ingestion and storage-cost reporting."""

__version__ = "1.0.0"
