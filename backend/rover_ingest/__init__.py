"""Mars rover imagery ingestion pipeline."""
