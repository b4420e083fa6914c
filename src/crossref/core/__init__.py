"""Core services for ingestion, clustering, verification and task execution."""
