"""sourcekb — source ingestion and semantic retrieval for client knowledge."""
