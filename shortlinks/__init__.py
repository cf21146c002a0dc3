"""URL shortener and identity services."""

__version__ = "0.2.0"
