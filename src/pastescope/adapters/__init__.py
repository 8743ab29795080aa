"""Adapters that plug the Pastebin API and notification channels into the core."""
