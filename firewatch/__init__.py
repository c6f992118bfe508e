"""Fire Watch: edge fire and gas monitor."""

__version__ = "1.0.0"
