"""Command-line interface for trunk."""
