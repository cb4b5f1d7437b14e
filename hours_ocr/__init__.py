"""Opening-hours recognition from OCR text observations."""

__version__ = "0.1.0"
