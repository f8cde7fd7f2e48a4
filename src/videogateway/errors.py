"""Error taxonomy shared by the mapping store, device strategies and web layer."""
from __future__ import annotations


class GatewayError(Exception):
    """Base class for errors surfaced to API callers."""

    status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GatewayError):
    """Unknown or unmapped slot, or unknown device."""

    status = 404


class InvalidArgumentError(GatewayError, ValueError):
    """Malformed mapping value, outlet out of range, or bad request input."""

    status = 400


class UnsupportedError(GatewayError):
    """A vendor strategy does not implement the requested capability."""

    status = 400


class IOFailureError(GatewayError):
    """The persisted mapping document could not be written."""

    status = 500


class NetworkFailureError(GatewayError):
    """An outbound fetch to a device or rack endpoint failed or timed out."""

    status = 502
