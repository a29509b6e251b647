"""
ethgate Exceptions

Custom exception classes for the gateway.
"""

from typing import Any, Optional


class GatewayException(Exception):
    """Base exception for ethgate."""
    pass


class MalformedRequest(GatewayException):
    """Request body is not a usable JSON-RPC request."""
    pass


class UnsupportedBatch(MalformedRequest):
    """Batch request received while batches are configured to be rejected."""
    pass


class UnsupportedMethod(GatewayException):
    """HTTP verb the gateway does not serve."""
    pass


class UpstreamError(GatewayException):
    """
    Upstream call failed after the retry policy gave up (or refused to retry).

    ``data`` carries the upstream's structured error payload when it sent one.
    """

    def __init__(self, message: str, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class UpstreamTransportError(UpstreamError):
    """Transient communication failure with the upstream. Safe to retry."""
    pass


class UpstreamRejectedError(UpstreamError):
    """The upstream refused the request outright. Retrying will not help."""
    pass
