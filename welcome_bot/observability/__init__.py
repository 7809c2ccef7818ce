"""Logging helpers: redaction and the rotating error log file."""
