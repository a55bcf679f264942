"""Shared helpers: logging, HTTP and error types."""
