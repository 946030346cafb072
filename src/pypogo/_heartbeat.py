"""Background heartbeat for an active session.

Each tick renews the access token when it is close to expiry, then sends
a map + inventory batch. Change detection works on payload digests only:
the heartbeat never decodes what the server returned.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from pypogo._crypto.hashing import payload_digest
from pypogo.exceptions import PogoError, PogoSessionNotActiveError
from pypogo.models.location import Location
from pypogo.models.rpc import Request, RequestType
from pypogo.updates.events import InventoryChanged, LocationDataChanged, UpdateEvent

if TYPE_CHECKING:
    from pypogo.session import Session

_logger = logging.getLogger(__name__)

HeartbeatRequests = Callable[[Location], Sequence[Request]]

_CHANGE_EVENTS: dict[RequestType, type[UpdateEvent]] = {
    RequestType.GET_INVENTORY: InventoryChanged,
    RequestType.GET_MAP_OBJECTS: LocationDataChanged,
}


def default_heartbeat_requests(_location: Location) -> tuple[Request, ...]:
    """Map objects around the envelope's position plus the inventory delta."""
    return (
        Request(request_type=RequestType.GET_MAP_OBJECTS),
        Request(request_type=RequestType.GET_INVENTORY),
    )


class HeartbeatDispatcher:
    """Drives periodic upkeep for one :class:`~pypogo.session.Session`."""

    def __init__(
        self,
        session: Session,
        *,
        interval: float,
        max_failures: int,
        build_requests: HeartbeatRequests = default_heartbeat_requests,
    ) -> None:
        self._session = session
        self._interval = interval
        self._max_failures = max_failures
        self._build_requests = build_requests
        self._digests: dict[RequestType, str] = {}
        self._task: asyncio.Task[None] | None = None
        self._consecutive_failures = 0
        self._last_error: Exception | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def observe(self, request_type: RequestType, payload: bytes) -> bool:
        """Record *payload* for *request_type*; return whether it differs from the last one."""
        digest = payload_digest(payload)
        previous = self._digests.get(request_type)
        self._digests[request_type] = digest
        return previous != digest

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="pypogo-heartbeat")

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        _logger.debug("Heartbeat started interval=%.1fs", self._interval)
        while self._session.is_active:
            await asyncio.sleep(self._interval)
            if not self._session.is_active:
                break
            if await self.beat():
                continue
            if self._consecutive_failures >= self._max_failures:
                await self._session.end(
                    f"heartbeat failed {self._consecutive_failures} times in a row: {self._last_error!r}"
                )
                break
        _logger.debug("Heartbeat stopped")

    async def beat(self) -> bool:
        """Run one tick; return ``False`` when it failed.

        Any exception other than cancellation counts as a failed tick.
        """
        try:
            requests = tuple(self._build_requests(self._session.location))
            await self._session.ensure_credential()
            payloads = await self._session.dispatch_batch(requests)
        except PogoSessionNotActiveError:
            return True
        except Exception as exc:
            self._consecutive_failures += 1
            self._last_error = exc
            _logger.warning(
                "Heartbeat failed (%d/%d): %r",
                self._consecutive_failures,
                self._max_failures,
                exc,
                exc_info=not isinstance(exc, PogoError),
            )
            return False

        self._consecutive_failures = 0
        self._last_error = None
        for request, payload in zip(requests, payloads, strict=True):
            event_type = _CHANGE_EVENTS.get(request.request_type)
            if event_type is not None and self.observe(request.request_type, payload):
                self._session.notifier.publish(event_type())
        return True
