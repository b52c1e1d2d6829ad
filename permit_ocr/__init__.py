"""Date and field extraction for solar project permits and utility letters."""

__version__ = "0.1.0"
