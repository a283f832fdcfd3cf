"""Artist Sync Engine — Chartmetric metrics ingestion and revenue estimates."""

__version__ = "1.0.0"
