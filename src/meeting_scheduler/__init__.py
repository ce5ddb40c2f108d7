"""Calendar-backed meeting scheduling with Google OAuth session management."""

__version__ = "0.1.0"
