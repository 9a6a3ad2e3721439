"""Exceptions raised by mcpcall."""

from typing import Any

__all__ = [
    "MCPError",
    "ConfigurationError",
    "TransportError",
    "TransportClosedError",
    "ProtocolError",
    "FramingError",
    "NoResponseError",
    "RPCError",
    "MCPTimeoutError",
]


class MCPError(Exception):
    """Base exception for MCP errors."""
    pass


class ConfigurationError(MCPError, ValueError):
    """Server configuration is unusable (e.g. stdio without a command)."""
    pass


class TransportError(MCPError):
    """Transport-level error (spawn, I/O, HTTP)."""
    pass


class TransportClosedError(TransportError):
    """The server process exited or the transport was closed."""
    pass


class ProtocolError(MCPError):
    """Protocol-level error (invalid messages, duplicate ids)."""
    pass


class FramingError(ProtocolError):
    """Missing or malformed Content-Length header."""
    pass


class NoResponseError(ProtocolError):
    """The HTTP server's reply did not carry the request's id."""
    pass


class RPCError(MCPError):
    """JSON-RPC error returned by the server."""

    def __init__(self, code: int, message: str, data: Any = None):
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"RPC Error {code}: {message}")


class MCPTimeoutError(MCPError, TimeoutError):
    """Timeout waiting for server response."""
    pass
