"""
MCP client facade.

Usage:
    async with create_client({"transport": "stdio", "command": "python",
                              "args": ["server.py"]}) as client:
        listing = await client.list_tools()
        result = await client.call_tool("my_tool", {"arg": "value"})

The same calls work unchanged against an HTTP server:

    client = create_client({"transport": "http", "url": "http://localhost:3000/mcp"})
"""

import logging
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from .config import ListToolsResult, ServerConfig
from .errors import ConfigurationError, ProtocolError
from .jsonrpc import RequestIds, build_request, interpret_response
from .transports import HTTPTransport, StdioTransport, Transport

logger = logging.getLogger('mcpcall')


class MCPClient:
    """
    Transport-agnostic client for the tools/list and tools/call methods.

    Requests may be issued concurrently from several tasks; each gets its own
    id and is matched to its own response.
    """

    def __init__(self, transport: Transport) -> None:
        self.transport = transport
        self._ids = RequestIds()
        self._closed = False

    @property
    def config(self) -> ServerConfig:
        return self.transport.config

    async def connect(self) -> None:
        """Start the transport. Optional: the first request connects lazily."""
        await self.transport.connect()

    async def request(self, method: str, params: Any = None) -> Any:
        """
        Make a JSON-RPC call and return the result.

        Raises:
            RPCError: If the server returns an error response.
            MCPTimeoutError: If no response arrives in time.
            TransportError: On transport-level errors.
        """
        request_id, envelope = build_request(self._ids, method, params)
        logger.debug(f"-> {method} id={request_id}")
        response = await self.transport.request(envelope)
        return interpret_response(response)

    async def list_tools(self) -> ListToolsResult:
        """List the tools the server exposes."""
        result = await self.request("tools/list", {})
        if not isinstance(result, dict):
            raise ProtocolError(f"tools/list result must be a dict, got {type(result).__name__}")
        try:
            return ListToolsResult.model_validate(result)
        except ValidationError as e:
            raise ProtocolError(f"Invalid tools/list result: {e}") from e

    async def call_tool(self, name: str, arguments: Optional[Any] = None) -> Any:
        """
        Call a tool on the server and return its result unchanged.

        Raises:
            ValueError: If tool name is empty.
            RPCError: If the server reports an error.
        """
        if not isinstance(name, str) or not name.strip():
            raise ValueError("Tool name must be a non-empty string")

        params = {
            "name": name,
            "arguments": {} if arguments is None else arguments
        }
        return await self.request("tools/call", params)

    async def close(self) -> None:
        """
        Close the client. Pending requests fail with TransportClosedError.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        await self.transport.close()

    async def __aenter__(self) -> "MCPClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


def create_client(config: Union[ServerConfig, Mapping[str, Any]]) -> MCPClient:
    """
    Create a client for one server.

    ``stdio`` servers get a StdioTransport; every other server is reached
    over HTTP. No process is started and no connection is made until the
    client connects or sends its first request.

    Raises:
        ConfigurationError: If the configuration is invalid or lacks the
            command (stdio) or url (http) its transport needs.
    """
    if not isinstance(config, ServerConfig):
        try:
            config = ServerConfig.model_validate(config)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid server configuration: {e}") from e

    if config.transport == "stdio":
        transport: Transport = StdioTransport(config)
    else:
        transport = HTTPTransport(config)
    return MCPClient(transport)
