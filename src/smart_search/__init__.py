"""Query understanding and behavior-aware ranking for the marketplace search."""

__version__ = "1.0.0"
