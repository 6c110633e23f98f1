"""Data ingestion from the backing RPC."""
