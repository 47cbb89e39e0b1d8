"""Command-line interface for gigmarket."""
