"""pastescope: watch the Pastebin scraping feed for sensitive content."""

__version__ = "0.1.0"
