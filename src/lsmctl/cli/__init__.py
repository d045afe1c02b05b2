"""Command-line interface for lsmctl."""
