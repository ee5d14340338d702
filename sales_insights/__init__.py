"""Sales Insights Assistant: natural-language analytics over retail transactions."""

__version__ = "0.1.0"
