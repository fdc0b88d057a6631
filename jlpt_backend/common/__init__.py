"""Shared infrastructure: logging, errors, authentication and sampling helpers."""
