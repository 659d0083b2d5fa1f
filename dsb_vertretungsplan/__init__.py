"""Scrape the DSBmobile substitution plan into one JSON record per day."""

__version__ = "0.1.0"
