"""Core infrastructure: logging, errors and configuration."""
