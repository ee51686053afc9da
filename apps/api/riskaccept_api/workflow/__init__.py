"""Risk acceptance workflow engine."""
