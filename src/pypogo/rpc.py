"""Call dispatcher: envelope building and request/response correlation.

Every outgoing envelope gets a fresh ``request_id`` and a pending future.
The transport is driven from a separate task per call and whatever reply
it hands back is routed to the future with the matching id, so replies
never cross between concurrent callers even when a pipelined transport
returns them out of order.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from pypogo._constants import REQUEST_ID_SEED
from pypogo._transport import Transport
from pypogo.exceptions import (
    PogoApiError,
    PogoError,
    PogoSessionClosedError,
    PogoSessionExpiredError,
    PogoTransportError,
)
from pypogo.models.credential import AccessToken
from pypogo.models.location import Location
from pypogo.models.rpc import Request, RequestEnvelope, ResponseEnvelope, ResponseStatus

_logger = logging.getLogger(__name__)

_AUTH_REJECTED_STATUSES: frozenset[ResponseStatus] = frozenset(
    {ResponseStatus.INVALID_AUTH_TOKEN, ResponseStatus.SESSION_INVALIDATED}
)


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def build_envelope(
    request_id: int,
    credential: AccessToken,
    location: Location,
    requests: Sequence[Request],
    *,
    locale: str,
    now_ms: int | None = None,
) -> RequestEnvelope:
    """Wrap *requests* with the auth token and position the server expects.

    The envelope captures the credential at build time; a renewal that
    happens while the call is in flight does not alter it.
    """
    return RequestEnvelope(
        request_id=request_id,
        auth_token=credential.token,
        location=location,
        issued_at_ms=now_ms if now_ms is not None else _now_ms(),
        locale=locale,
        requests=tuple(requests),
    )


def raise_for_status(envelope: RequestEnvelope, response: ResponseEnvelope) -> tuple[bytes, ...]:
    """Return the response payloads or raise for a non-OK status.

    Raises
    ------
    PogoSessionExpiredError
        The server rejected the auth token.
    PogoApiError
        Any other non-OK status.
    PogoTransportError
        The reply does not carry one payload per request.
    """
    status = response.status
    if status in _AUTH_REJECTED_STATUSES:
        raise PogoSessionExpiredError(
            f"Auth token rejected for request_id={envelope.request_id}: status={status.name}",
            status=int(status),
            request_id=envelope.request_id,
        )
    if not status.is_ok:
        detail = f" error={response.error}" if response.error else ""
        raise PogoApiError(
            f"Request {envelope.request_id} failed: status={status.name}({int(status)}){detail}",
            status=int(status),
            request_id=envelope.request_id,
        )
    if len(response.returns) != len(envelope.requests):
        raise PogoTransportError(
            f"Request {envelope.request_id} sent {len(envelope.requests)} request(s) "
            f"but got {len(response.returns)} payload(s)",
            request_id=envelope.request_id,
        )
    return response.returns


@dataclass(slots=True)
class _PendingCall:
    """One call awaiting its reply.

    ``future`` is resolved exactly once: with the reply whose
    ``request_id`` matches, or with the error that ended the call.
    """

    envelope: RequestEnvelope
    future: asyncio.Future[ResponseEnvelope]
    created_at: float = field(default_factory=time.monotonic)

    @property
    def request_id(self) -> int:
        return self.envelope.request_id


class RpcClient:
    """Correlating dispatcher over a :class:`~pypogo._transport.Transport`."""

    def __init__(self, transport: Transport, *, call_timeout: float) -> None:
        self._transport = transport
        self._call_timeout = call_timeout
        self._ids = itertools.count(REQUEST_ID_SEED)
        self._pending: dict[int, _PendingCall] = {}
        self._transmits: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        """Number of calls still waiting for a reply."""
        return len(self._pending)

    def next_request_id(self) -> int:
        return next(self._ids)

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        """Send *envelope* and wait for the reply carrying its ``request_id``.

        Raises
        ------
        PogoTransportError
            Transport failure or no reply within ``call_timeout``.
        PogoSessionClosedError
            The dispatcher was closed before or while waiting.
        """
        if self._closed:
            raise PogoSessionClosedError("Session is closed")
        request_id = envelope.request_id
        if request_id in self._pending:
            raise ValueError(f"request_id {request_id} is already in flight")

        loop = asyncio.get_running_loop()
        call = _PendingCall(envelope=envelope, future=loop.create_future())
        self._pending[request_id] = call

        task = loop.create_task(self._transmit(call), name=f"pypogo-rpc-{request_id}")
        self._transmits.add(task)
        task.add_done_callback(self._transmits.discard)

        try:
            return await asyncio.wait_for(call.future, self._call_timeout)
        except TimeoutError as exc:
            raise PogoTransportError(
                f"Request {request_id} timed out after {self._call_timeout}s",
                request_id=request_id,
            ) from exc
        finally:
            if self._pending.get(request_id) is call:
                del self._pending[request_id]

    async def call(self, envelope: RequestEnvelope) -> tuple[bytes, ...]:
        """:meth:`send` then :func:`raise_for_status`."""
        response = await self.send(envelope)
        return raise_for_status(envelope, response)

    async def _transmit(self, call: _PendingCall) -> None:
        try:
            response = await self._transport.send(call.envelope)
        except PogoError as exc:
            self._fail(call, exc)
            return
        except Exception as exc:
            error = PogoTransportError(
                f"Transport failed for request_id={call.request_id}: {exc!r}",
                request_id=call.request_id,
            )
            error.__cause__ = exc
            self._fail(call, error)
            return
        self.resolve(response)

    def _fail(self, call: _PendingCall, exc: PogoError) -> None:
        if self._pending.get(call.request_id) is call and not call.future.done():
            call.future.set_exception(exc)
        else:
            _logger.debug("Discarding error for settled request_id=%d: %s", call.request_id, exc)

    def resolve(self, response: ResponseEnvelope) -> bool:
        """Deliver *response* to the call waiting on its ``request_id``.

        Returns ``False`` (and drops the reply) when no such call is pending,
        e.g. because it already timed out.
        """
        call = self._pending.get(response.request_id)
        if call is None or call.future.done():
            _logger.debug("Dropping reply for unknown or settled request_id=%d", response.request_id)
            return False
        call.future.set_result(response)
        return True

    async def close(self) -> None:
        """Fail every in-flight call with :class:`PogoSessionClosedError` and stop transmitting."""
        self._closed = True
        pending = list(self._pending.values())
        for call in pending:
            if not call.future.done():
                call.future.set_exception(
                    PogoSessionClosedError(f"Session closed while request {call.request_id} was in flight")
                )
        if pending:
            _logger.debug("Failed %d in-flight call(s) on close", len(pending))

        transmits = list(self._transmits)
        for task in transmits:
            task.cancel()
        if transmits:
            await asyncio.gather(*transmits, return_exceptions=True)
