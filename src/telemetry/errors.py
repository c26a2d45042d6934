"""Exception taxonomy for the telemetry sync and query layers.

    UpstreamFetchError — export/catalog API returned non-2xx, timed out, or sent
                         an unusable body.  Recoverable: the entity is skipped
                         for this run.
    ValidationError    — bad resolution, unparseable date, inverted window.
                         Surfaced to the caller as a rejected request.
    StoreError         — database connectivity or write failure.
"""

from __future__ import annotations


class HivewatchError(Exception):
    """Base class for all Hivewatch domain errors."""


class UpstreamFetchError(HivewatchError):
    """The upstream telemetry API could not deliver a usable response.

    Attributes:
        status_code: HTTP status of the failed response (None for timeouts
                     and transport errors).
        body:        Response body text, kept for diagnostics.
    """

    def __init__(
        self, message: str, status_code: int | None = None, body: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ValidationError(HivewatchError):
    """A read or sync request carried invalid parameters."""


class StoreError(HivewatchError):
    """A database operation failed."""
