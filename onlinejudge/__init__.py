"""Online judge submission engine."""

__version__ = "1.0.0"
