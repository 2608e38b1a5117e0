"""Command-line interface for the box cache."""
