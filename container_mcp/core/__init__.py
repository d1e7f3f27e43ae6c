"""Core infrastructure: configuration, logging, errors, daemon access, log parsing."""
