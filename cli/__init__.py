"""Command-line interface for librarium."""
