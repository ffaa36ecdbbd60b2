"""kt command-line interface."""
