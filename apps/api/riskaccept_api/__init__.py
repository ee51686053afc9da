"""Risk acceptance workflow API."""
