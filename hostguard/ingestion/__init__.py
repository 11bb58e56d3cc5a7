"""HTTP ingestion endpoints."""
