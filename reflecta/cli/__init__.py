"""Command-line interface for reflecta."""
