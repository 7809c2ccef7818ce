"""Pydantic models for welcome content and room events."""
