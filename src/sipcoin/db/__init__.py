"""SQLite and filesystem stores backing the ingestion pipeline."""
