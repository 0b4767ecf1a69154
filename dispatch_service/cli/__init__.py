"""Command-line interface for dispatch-service maintenance tasks."""
