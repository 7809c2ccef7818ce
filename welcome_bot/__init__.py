"""Matrix bot that sends configurable welcome DMs to new room members."""

__version__ = "1.0.0"
