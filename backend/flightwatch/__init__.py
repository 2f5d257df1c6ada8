"""flightwatch – adaptive flight-status update scheduler."""

__version__ = "0.1.0"
