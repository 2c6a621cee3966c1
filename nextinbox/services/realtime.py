from __future__ import annotations

import asyncio
import json
import logging
import select
from collections import deque
from typing import Any, Callable, Iterator

logger = logging.getLogger(__name__)

FAILED_LOGS_CHANNEL = "failed_logs"


class FailedLogSubscription:
    """Insert events for failed logs, pushed through Postgres LISTEN/NOTIFY.

    The ``failed_logs`` trigger filters on status server-side; this side only
    narrows the stream to one identity. :meth:`wait_event` waits on the
    listener socket from the event loop; :meth:`next_event` and iteration
    block the calling thread instead. Both stop once :meth:`close` is called.
    """

    def __init__(
        self,
        open_listener: Callable[[str], Any],
        user_id: str | None = None,
        channel: str = FAILED_LOGS_CHANNEL,
    ) -> None:
        self._open_listener = open_listener
        self.user_id = user_id
        self.channel = channel
        self._conn: Any | None = None
        self._pending: deque[dict[str, Any]] = deque()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> "FailedLogSubscription":
        if self._closed:
            raise RuntimeError("Subscription already closed")
        if self._conn is None:
            conn = self._open_listener(self.channel)
            if self._closed:
                # closed from another task while the connection was being opened
                conn.close()
                raise RuntimeError("Subscription closed while opening")
            self._conn = conn
            logger.info("Subscribed to %s for user=%s", self.channel, self.user_id)
        return self

    def _take(self) -> dict[str, Any] | None:
        self._drain()
        return self._pending.popleft() if self._pending else None

    def next_event(self, timeout: float) -> dict[str, Any] | None:
        """Return the next matching event, or None if ``timeout`` elapses first."""
        if self._closed:
            return None
        self.open()
        event = self._take()
        if event is None:
            readable, _, _ = select.select([self._conn], [], [], timeout)
            if readable and not self._closed:
                event = self._take()
        return event

    async def wait_event(self, timeout: float) -> dict[str, Any] | None:
        """Like :meth:`next_event`, without holding a thread while idle."""
        if self._closed:
            return None
        self.open()
        event = self._take()
        if event is not None:
            return event

        loop = asyncio.get_running_loop()
        readable = loop.create_future()

        def _ready() -> None:
            if not readable.done():
                readable.set_result(None)

        fd = self._conn.fileno()
        loop.add_reader(fd, _ready)
        try:
            await asyncio.wait_for(readable, timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            loop.remove_reader(fd)
        return None if self._closed else self._take()

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while not self._closed:
            event = self.next_event(timeout=5.0)
            if event is not None:
                yield event

    def _drain(self) -> None:
        conn = self._conn
        conn.poll()
        while conn.notifies:
            notify = conn.notifies.pop(0)
            event = self._decode(notify.payload)
            if event is not None:
                self._pending.append(event)

    def _decode(self, payload: str) -> dict[str, Any] | None:
        try:
            event = json.loads(payload)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed %s payload: %.120s", self.channel, payload)
            return None
        if not isinstance(event, dict):
            return None
        if self.user_id is not None and str(event.get("user_id")) != str(self.user_id):
            return None
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending.clear()
        conn, self._conn = self._conn, None
        if conn is None or conn.closed:
            return
        try:
            with conn.cursor() as cur:
                cur.execute(f"UNLISTEN {self.channel}")
        except Exception as exc:
            logger.warning("UNLISTEN %s failed: %s", self.channel, exc)
        finally:
            conn.close()
            logger.info("Unsubscribed from %s for user=%s", self.channel, self.user_id)
