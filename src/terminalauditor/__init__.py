"""Real-time reviewing proxy for interactive AI coding sessions."""

__version__ = "0.1.0"
