"""Logging and parsing helpers."""
