"""
Transports carrying JSON-RPC envelopes to an MCP server.

Both transports implement the same contract: request() sends one envelope
and returns the matching response envelope, close() releases whatever the
transport holds. The client facade never needs to know which one it talks to.

StdioTransport
    Spawns the server as a child process. Requests are written to its stdin
    as Content-Length frames; stdout is decoded incrementally and responses
    are routed to their callers by id, so any number of requests may be
    outstanding at once and answered in any order. stderr is passed through
    to our own stderr.

HTTPTransport
    One POST per request. The reply body is the response envelope.

Platform: the stdio transport signals the child's process group on close,
which requires a POSIX system.
"""

import asyncio
import json
import logging
import os
import signal
import sys
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from .config import ServerConfig
from .errors import (
    ConfigurationError,
    MCPTimeoutError,
    NoResponseError,
    ProtocolError,
    TransportClosedError,
    TransportError,
)
from .framing import FrameDecoder, encode_frame
from .jsonrpc import is_response, normalize_id
from .pending import PendingRequests

logger = logging.getLogger('mcpcall')

# Chunk size for reading from pipes
READ_CHUNK_SIZE = 65536

# Grace period for subprocess termination before sending SIGKILL
PROCESS_TERMINATE_TIMEOUT = 3

__all__ = [
    "Transport",
    "StdioTransport",
    "HTTPTransport",
    "READ_CHUNK_SIZE",
    "PROCESS_TERMINATE_TIMEOUT",
]


def _write_stderr(data: bytes) -> None:
    """Copy raw bytes to our stderr and flush immediately."""
    buffer = getattr(sys.stderr, "buffer", None)
    if buffer is not None:
        buffer.write(data)
    else:
        sys.stderr.write(data.decode('utf-8', errors='replace'))
    sys.stderr.flush()


# ============================================================================
# Transport Layer - Abstract Base
# ============================================================================

class Transport(ABC):
    """Abstract base class for MCP transports."""

    def __init__(self, config: ServerConfig) -> None:
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Acquire the underlying resource (process, HTTP client)."""
        pass

    @abstractmethod
    async def request(self, message: dict) -> dict:
        """
        Send a JSON-RPC request and return its response envelope.

        Raises:
            MCPTimeoutError: No response within the configured timeout.
            TransportError: On connection/I/O errors.
            ProtocolError: On invalid messages.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release the transport. Safe to call more than once."""
        pass


# ============================================================================
# Stdio Transport
# ============================================================================

class StdioTransport(Transport):
    """
    Transport using subprocess stdin/stdout pipes with Content-Length framing.

    The process is started by connect(), or by the first request() if
    connect() was not called. It is stopped exactly once by close().
    """

    def __init__(self, config: ServerConfig, forward_stderr: bool = True) -> None:
        """
        Args:
            config: Server configuration; ``command`` is required.
            forward_stderr: If True (default), copy server stderr to our stderr.

        Raises:
            ConfigurationError: If no command is configured.
        """
        if not config.command:
            raise ConfigurationError("stdio server missing command")
        super().__init__(config)
        self.forward_stderr = forward_stderr
        self.process: Optional[asyncio.subprocess.Process] = None
        self._pending = PendingRequests()
        self._decoder = FrameDecoder()
        self._tasks: list[asyncio.Task] = []
        self._start_lock = asyncio.Lock()
        self._closed = False
        self._exit_reason: Optional[str] = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self) -> None:
        """Spawn the server process and start reading its output."""
        async with self._start_lock:
            if self._closed:
                raise TransportClosedError("Transport is closed")
            if self.process is not None:
                return

            # Merge environment
            process_env = os.environ.copy()
            process_env.update(self.config.env)

            logger.info(f"Starting stdio server: {self.config.command} {' '.join(self.config.args)}")
            try:
                # New session so close() can signal the server and its children together
                self.process = await asyncio.create_subprocess_exec(
                    self.config.command,
                    *self.config.args,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=self.config.cwd,
                    env=process_env,
                    start_new_session=True
                )
            except OSError as e:
                raise TransportError(f"Failed to start process: {e}") from e

            self._tasks = [
                asyncio.create_task(self._read_stdout(self.process)),
                asyncio.create_task(self._read_stderr(self.process)),
            ]

    async def request(self, message: dict) -> dict:
        if self.process is None:
            await self.connect()
        if self._closed:
            raise TransportClosedError("Transport is closed")
        if self._exit_reason is not None:
            raise TransportClosedError(self._exit_reason)

        try:
            frame = encode_frame(message)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Failed to serialize message: {e}") from e

        request_id = message["id"]
        future = self._pending.register(request_id, self.config.timeout_ms)

        stdin = self.process.stdin
        try:
            stdin.write(frame)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as e:
            self._pending.fail(request_id, TransportClosedError(f"Failed to send message: {e}"))

        return await future

    async def _read_stdout(self, process: asyncio.subprocess.Process) -> None:
        """Decode frames from stdout and route each response to its caller."""
        try:
            while True:
                chunk = await process.stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in self._decoder.feed(chunk):
                    self._dispatch(message)
        except OSError as e:
            logger.warning(f"Error reading server stdout: {e}")
        finally:
            reason = "Server stdout closed unexpectedly"
            if process.returncode is not None:
                reason = f"Server process exited with code {process.returncode}"
            self._exit_reason = reason
            failed = self._pending.fail_all(TransportClosedError(reason))
            if failed:
                logger.info(f"{reason}; failed {failed} pending request(s)")

    async def _read_stderr(self, process: asyncio.subprocess.Process) -> None:
        try:
            while True:
                chunk = await process.stderr.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                if self.forward_stderr:
                    _write_stderr(chunk)
        except OSError as e:
            logger.debug(f"Error reading server stderr: {e}")

    def _dispatch(self, message: Any) -> None:
        if not is_response(message):
            logger.debug(f"Dropping non-response message from server: {message!r:.200}")
            return
        self._pending.complete(normalize_id(message["id"]), message)

    async def close(self) -> None:
        """Fail pending requests and terminate the subprocess."""
        if self._closed:
            return
        self._closed = True
        self._pending.fail_all(TransportClosedError("Transport closed"))

        async with self._start_lock:
            process = self.process
        if process is None:
            return

        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError:
                pass

        if process.returncode is None:
            self._signal(process, signal.SIGTERM)
            try:
                await asyncio.wait_for(process.wait(), PROCESS_TERMINATE_TIMEOUT)
            except asyncio.TimeoutError:
                # Force kill if graceful termination times out
                self._signal(process, signal.SIGKILL)
                try:
                    await asyncio.wait_for(process.wait(), 1)
                except asyncio.TimeoutError:
                    logger.warning(f"Server process {process.pid} did not exit after SIGKILL")

        # Pipes are closed once the process is gone; give the readers a moment
        # to hit EOF, then cancel whatever is left.
        if self._tasks:
            finished, still_running = await asyncio.wait(self._tasks, timeout=1)
            for task in still_running:
                task.cancel()
            for task in finished:
                if not task.cancelled() and task.exception() is not None:
                    logger.warning(f"Server reader failed: {task.exception()!r}")
            self._tasks = []
        self._decoder.reset()
        logger.info(f"Stopped stdio server {self.config.command} (pid {process.pid})")

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, sig: int) -> None:
        """Signal the server's process group, falling back to the process itself."""
        try:
            os.killpg(process.pid, sig)
        except (ProcessLookupError, PermissionError):
            # Group already gone, or not ours to signal
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                pass


# ============================================================================
# HTTP Transport
# ============================================================================

class HTTPTransport(Transport):
    """
    Transport using one HTTP POST per request.

    The reply body is stored under its own id and then looked up by the id of
    the request that produced it. A reply with a missing or different id
    therefore surfaces as NoResponseError. Replies are kept only for ids that
    are in flight, so the table never outgrows the number of open requests.
    """

    def __init__(self, config: ServerConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        """
        Args:
            config: Server configuration; ``url`` is required.
            client: Optional httpx client to use instead of creating one.
                    An injected client is not closed by close().

        Raises:
            ConfigurationError: If no url is configured.
        """
        if not config.url:
            raise ConfigurationError("http server missing url")
        super().__init__(config)
        self._client = client
        self._owns_client = client is None
        self._responses: dict[Any, dict] = {}
        self._in_flight: set[Any] = set()
        self._closed = False

    async def connect(self) -> None:
        if self._closed:
            raise TransportClosedError("Transport is closed")
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)

    async def request(self, message: dict) -> dict:
        request_id = message["id"]
        self._in_flight.add(request_id)
        try:
            await self._post(message)
            return self._take(request_id)
        finally:
            self._in_flight.discard(request_id)
            self._responses.pop(request_id, None)

    async def _post(self, message: dict) -> None:
        """Send a JSON-RPC message via HTTP POST and store the reply."""
        await self.connect()
        headers = {"Content-Type": "application/json", **self.config.headers}
        try:
            body = json.dumps(message, separators=(',', ':'))
        except (TypeError, ValueError) as e:
            raise TransportError(f"Failed to serialize message: {e}") from e

        try:
            response = await self._client.post(self.config.url, content=body, headers=headers)
        except httpx.TimeoutException as e:
            raise MCPTimeoutError(f"Timed out waiting for response from {self.config.url}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP request to {self.config.url} failed: {e}") from e

        # A JSON-RPC error may come with a 4xx/5xx status, so parse regardless
        try:
            reply = response.json()
        except (ValueError, RecursionError) as e:
            raise ProtocolError(
                f"Invalid JSON from server (HTTP {response.status_code}): {e}"
            ) from e

        reply_id = normalize_id(reply.get("id")) if isinstance(reply, dict) else None
        if isinstance(reply_id, int) and reply_id in self._in_flight:
            self._responses[reply_id] = reply
        else:
            # Only replies some caller is waiting for are kept
            logger.debug(f"Dropping HTTP reply for id {reply_id!r} (HTTP {response.status_code})")

    def _take(self, request_id: Any) -> dict:
        reply = self._responses.pop(request_id, None)
        if reply is None:
            raise NoResponseError("No response from server")
        return reply

    async def close(self) -> None:
        self._closed = True
        self._responses.clear()
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
