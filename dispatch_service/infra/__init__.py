"""Infrastructure adapters: database lifecycle, logging, email, push and metrics."""
