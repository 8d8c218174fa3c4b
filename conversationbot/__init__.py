"""Guided conversation bot with durable per-user sessions."""
__version__ = "1.0.0"
