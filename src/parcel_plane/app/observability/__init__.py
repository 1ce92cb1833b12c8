"""Logging configuration and request correlation."""
