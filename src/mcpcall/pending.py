"""
Table of in-flight requests awaiting a response.

Each entry pairs an asyncio future with a timer. Exactly one outcome is
delivered per registered id: the response, a timeout, or a failure passed
to fail()/fail_all(). Whichever comes first removes the entry; anything that
arrives afterwards for the same id is dropped.
"""

import asyncio
import logging
from typing import Any, Optional

from .config import DEFAULT_TIMEOUT_MS
from .errors import MCPTimeoutError, ProtocolError

logger = logging.getLogger('mcpcall')

TIMEOUT_MESSAGE = "Timed out waiting for response"


class PendingRequests:
    """Correlates responses to callers by request id. Owned by one transport."""

    def __init__(self) -> None:
        self._entries: dict[Any, tuple[asyncio.Future, asyncio.TimerHandle]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: Any) -> bool:
        return request_id in self._entries

    def register(self, request_id: Any, timeout_ms: Optional[int] = None) -> asyncio.Future:
        """
        Create an entry for ``request_id`` and return the future to await.

        Must be called from a running event loop.

        Raises:
            ProtocolError: If the id is already pending.
        """
        if request_id in self._entries:
            raise ProtocolError(f"Request id {request_id} is already pending")

        if timeout_ms is None:
            timeout_ms = DEFAULT_TIMEOUT_MS

        loop = asyncio.get_running_loop()
        future = loop.create_future()
        timer = loop.call_later(timeout_ms / 1000.0, self._expire, request_id)
        self._entries[request_id] = (future, timer)
        future.add_done_callback(lambda f, rid=request_id: self._forget_cancelled(rid, f))
        return future

    def complete(self, request_id: Any, response: dict) -> bool:
        """
        Deliver ``response`` to the caller waiting on ``request_id``.

        Returns False (and delivers nothing) if the id is not pending.
        """
        entry = self._entries.pop(request_id, None)
        if entry is None:
            logger.debug(f"Dropping response for unknown or completed request id={request_id!r}")
            return False
        future, timer = entry
        timer.cancel()
        if not future.done():
            future.set_result(response)
        return True

    def fail(self, request_id: Any, error: BaseException) -> bool:
        """Fail a single pending request. Returns False if it was not pending."""
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return False
        future, timer = entry
        timer.cancel()
        if not future.done():
            future.set_exception(error)
        return True

    def fail_all(self, error: BaseException) -> int:
        """Fail every pending request with ``error``. Returns how many were failed."""
        entries = list(self._entries.values())
        self._entries.clear()
        for future, timer in entries:
            timer.cancel()
            if not future.done():
                future.set_exception(error)
        return len(entries)

    def _expire(self, request_id: Any) -> None:
        if self.fail(request_id, MCPTimeoutError(TIMEOUT_MESSAGE)):
            logger.debug(f"Request id={request_id!r} timed out")

    def _forget_cancelled(self, request_id: Any, future: asyncio.Future) -> None:
        # The caller stopped waiting; the request stays sent and any late
        # response for it is dropped.
        if not future.cancelled():
            return
        entry = self._entries.get(request_id)
        if entry is not None and entry[0] is future:
            del self._entries[request_id]
            entry[1].cancel()
