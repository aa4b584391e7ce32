"""Error taxonomy for the extraction pipeline.

None of these are meant to escape a job run: each has a fixed catch site
where it is logged and the pipeline moves on.
"""

from __future__ import annotations


class RecallGraphError(Exception):
    """Base class for recall-graph errors."""


class OracleError(RecallGraphError):
    """Transport, auth or quota failure while calling the completion service."""


ModelError = OracleError


class ParseError(RecallGraphError):
    """The oracle returned something that is not a recognizable extraction list."""


class ExtractionValidationError(RecallGraphError):
    """A single extracted item is missing a field or is outside its closed set."""


class PersistenceError(RecallGraphError):
    """A primary-store write or read failed."""


class ReplicationError(RecallGraphError):
    """An auxiliary recall store rejected or failed an upsert."""

    def __init__(self, backend: str, message: str):
        super().__init__(f"{backend}: {message}")
        self.backend = backend
