"""Access and visibility policy."""
