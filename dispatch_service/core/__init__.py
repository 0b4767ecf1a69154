"""Core building blocks: database base classes, repositories and settings."""
