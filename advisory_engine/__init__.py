"""Document ingestion, analysis and sync service for the AI advisory workspace."""
