"""Metered odds and social-post ingestion."""

__version__ = "0.1.0"
