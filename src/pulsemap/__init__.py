"""PulseMap: Politiloggen incident ingestion and enrichment."""
