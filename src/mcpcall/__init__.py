from .client import MCPClient, create_client
from .config import DEFAULT_TIMEOUT_MS, ListToolsResult, ServerConfig, ToolDefinition
from .errors import (
    ConfigurationError,
    FramingError,
    MCPError,
    MCPTimeoutError,
    NoResponseError,
    ProtocolError,
    RPCError,
    TransportClosedError,
    TransportError,
)
from .framing import FrameDecoder, encode_frame
from .jsonrpc import RequestIds, build_request, interpret_response
from .pending import PendingRequests
from .transports import HTTPTransport, StdioTransport, Transport

__all__ = [
    # Client
    "MCPClient",
    "create_client",
    # Models
    "ServerConfig",
    "ToolDefinition",
    "ListToolsResult",
    "DEFAULT_TIMEOUT_MS",
    # Transports
    "Transport",
    "StdioTransport",
    "HTTPTransport",
    # Protocol building blocks
    "FrameDecoder",
    "encode_frame",
    "PendingRequests",
    "RequestIds",
    "build_request",
    "interpret_response",
    # Exceptions
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

__version__ = "0.1.0"
