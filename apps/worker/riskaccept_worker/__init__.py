"""Risk acceptance background worker."""
