"""HTTP API for the review documents and CSV ingestion."""
