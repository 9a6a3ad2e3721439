"""
JSON-RPC 2.0 envelopes and request identifiers.

Only the client side of the protocol is modelled: requests go out, responses
come back. Batches, notifications and server-to-client requests are not
supported.
"""

from typing import Any

from .errors import RPCError

# JSON-RPC 2.0 version string
JSONRPC_VERSION = "2.0"


class RequestIds:
    """Monotonic request id counter. Ids start at 1 and are never reused."""

    def __init__(self, start: int = 1) -> None:
        self._next = start

    def next_id(self) -> int:
        request_id = self._next
        self._next += 1
        return request_id


def normalize_id(id_value: Any) -> Any:
    """
    Normalize a JSON-RPC id for consistent dictionary key usage.

    Integral floats are converted to int so that 1 and 1.0 match in lookups.
    Booleans are not ids and are returned as None.
    """
    if isinstance(id_value, bool):
        return None
    if isinstance(id_value, float) and id_value.is_integer():
        return int(id_value)
    return id_value


def build_request(ids: RequestIds, method: str, params: Any = None) -> tuple[int, dict[str, Any]]:
    """Allocate an id and build a request envelope for ``method``."""
    request_id = ids.next_id()
    envelope = {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
        "params": {} if params is None else params,
    }
    return request_id, envelope


def is_response(message: Any) -> bool:
    """
    True if ``message`` looks like a response to one of our requests: a JSON
    object with an integer id and exactly one of 'result' or 'error'.
    """
    if not isinstance(message, dict):
        return False
    if not isinstance(normalize_id(message.get("id")), int):
        return False
    has_result = "result" in message
    has_error = "error" in message and message["error"] is not None
    return has_result != has_error


def interpret_response(response: dict[str, Any]) -> Any:
    """
    Return the 'result' of a response envelope.

    Raises:
        RPCError: If the response carries an 'error' object.
    """
    error = response.get("error")
    if error is not None:
        if isinstance(error, dict):
            raise RPCError(
                code=error.get("code", -1),
                message=error.get("message", "Unknown error"),
                data=error.get("data")
            )
        raise RPCError(code=-1, message=str(error))
    return response.get("result")
