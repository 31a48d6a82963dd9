"""Errors raised by ingestion runs, upstream clients, and the store."""

from __future__ import annotations


class IngestError(RuntimeError):
    """Base error for ingestion operations."""


class UpstreamAuthError(IngestError):
    """Raised when an upstream rejects our credentials; fatal to the run."""


class QuotaExhaustedError(IngestError):
    """Raised when an upstream reports purchased credits are used up."""


class PersistenceError(IngestError):
    """Raised when one store write fails."""


class StoreNotBootstrapped(IngestError):
    """Raised when a writing run starts against a store without tables."""


class CLIError(IngestError):
    """User-facing CLI error."""
