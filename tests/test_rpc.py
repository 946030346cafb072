from __future__ import annotations

import asyncio
from collections import deque
from datetime import UTC, datetime, timedelta

import pytest

from pypogo.exceptions import (
    PogoApiError,
    PogoSessionClosedError,
    PogoSessionExpiredError,
    PogoTransportError,
)
from pypogo.models import AccessToken, Location, Request, RequestEnvelope, RequestType, ResponseEnvelope
from pypogo.models.rpc import ResponseStatus
from pypogo.rpc import RpcClient, build_envelope

_LOCATION = Location(latitude=51.507351, longitude=-0.127758)


def _credential() -> AccessToken:
    return AccessToken(owner="alice", token="bearer-1", expiry=datetime.now(UTC) + timedelta(hours=1))


def _envelope(client: RpcClient, *types: RequestType) -> RequestEnvelope:
    requests = [Request(request_type=t) for t in (types or (RequestType.FORT_DETAILS,))]
    return build_envelope(client.next_request_id(), _credential(), _LOCATION, requests, locale="en-GB")


def _reply(envelope: RequestEnvelope, status: ResponseStatus = ResponseStatus.OK) -> ResponseEnvelope:
    return ResponseEnvelope(
        request_id=envelope.request_id,
        status=status,
        returns=tuple(f"reply-{envelope.request_id}".encode() for _ in envelope.requests),
    )


class _ShufflingTransport:
    """Holds every send until *expected* are queued, then answers newest-first.

    Each ``send`` call returns the reply to whichever envelope is on top of
    the stack, so almost every caller gets someone else's reply back.
    """

    def __init__(self, expected: int) -> None:
        self._expected = expected
        self._stack: deque[RequestEnvelope] = deque()
        self._all_queued = asyncio.Event()
        self.crossed = 0

    async def startup(self) -> None:
        return None

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        self._stack.append(envelope)
        if len(self._stack) >= self._expected:
            self._all_queued.set()
        await self._all_queued.wait()
        answered = self._stack.pop()
        if answered.request_id != envelope.request_id:
            self.crossed += 1
        return _reply(answered)

    async def close(self) -> None:
        return None


class _HangingTransport:
    def __init__(self) -> None:
        self.sent: list[RequestEnvelope] = []

    async def startup(self) -> None:
        return None

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        self.sent.append(envelope)
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    async def close(self) -> None:
        return None


class _StaticTransport:
    def __init__(self, status: ResponseStatus = ResponseStatus.OK, *, payloads: int | None = None) -> None:
        self.status = status
        self.payloads = payloads

    async def startup(self) -> None:
        return None

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        count = len(envelope.requests) if self.payloads is None else self.payloads
        return ResponseEnvelope(request_id=envelope.request_id, status=self.status, returns=(b"p",) * count)

    async def close(self) -> None:
        return None


class _BrokenTransport(_StaticTransport):
    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        raise RuntimeError("socket exploded")


async def _wait_in_flight(client: RpcClient, count: int) -> None:
    while client.in_flight < count:
        await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_concurrent_calls_each_get_their_own_reply() -> None:
    transport = _ShufflingTransport(expected=50)
    client = RpcClient(transport, call_timeout=5.0)
    envelopes = [_envelope(client) for _ in range(50)]

    results = await asyncio.gather(*(client.call(env) for env in envelopes))

    assert transport.crossed > 0
    for env, payloads in zip(envelopes, results, strict=True):
        assert payloads == (f"reply-{env.request_id}".encode(),)
    assert client.in_flight == 0
    await client.close()


@pytest.mark.asyncio
async def test_request_ids_are_unique_and_increasing() -> None:
    client = RpcClient(_StaticTransport(), call_timeout=1.0)
    ids = [client.next_request_id() for _ in range(5)]
    assert ids == sorted(set(ids))
    await client.close()


@pytest.mark.asyncio
async def test_timeout_raises_transport_error_and_clears_pending() -> None:
    client = RpcClient(_HangingTransport(), call_timeout=0.05)
    envelope = _envelope(client)

    with pytest.raises(PogoTransportError) as excinfo:
        await client.call(envelope)

    assert excinfo.value.request_id == envelope.request_id
    assert client.in_flight == 0
    # A reply arriving after the timeout is dropped.
    assert client.resolve(_reply(envelope)) is False
    await client.close()


@pytest.mark.asyncio
async def test_unknown_reply_is_dropped() -> None:
    client = RpcClient(_HangingTransport(), call_timeout=1.0)
    assert client.resolve(ResponseEnvelope(request_id=42)) is False
    await client.close()


@pytest.mark.asyncio
async def test_duplicate_request_id_rejected() -> None:
    client = RpcClient(_HangingTransport(), call_timeout=1.0)
    envelope = _envelope(client)
    task = asyncio.create_task(client.send(envelope))
    await _wait_in_flight(client, 1)

    with pytest.raises(ValueError):
        await client.send(envelope)

    await client.close()
    with pytest.raises(PogoSessionClosedError):
        await task


@pytest.mark.asyncio
async def test_close_fails_in_flight_calls_and_rejects_new_ones() -> None:
    transport = _HangingTransport()
    client = RpcClient(transport, call_timeout=5.0)
    tasks = [asyncio.create_task(client.call(_envelope(client))) for _ in range(3)]
    await _wait_in_flight(client, 3)

    await client.close()

    for task in tasks:
        with pytest.raises(PogoSessionClosedError):
            await task
    with pytest.raises(PogoSessionClosedError):
        await client.call(_envelope(client))
    assert client.in_flight == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "error_type"),
    [
        (ResponseStatus.INVALID_AUTH_TOKEN, PogoSessionExpiredError),
        (ResponseStatus.SESSION_INVALIDATED, PogoSessionExpiredError),
        (ResponseStatus.BAD_REQUEST, PogoApiError),
        (ResponseStatus.UNKNOWN, PogoApiError),
    ],
)
async def test_non_ok_status_raises(status: ResponseStatus, error_type: type[Exception]) -> None:
    client = RpcClient(_StaticTransport(status), call_timeout=1.0)
    envelope = _envelope(client)

    with pytest.raises(error_type) as excinfo:
        await client.call(envelope)

    assert isinstance(excinfo.value, PogoApiError)
    assert excinfo.value.status == int(status)
    assert excinfo.value.request_id == envelope.request_id
    await client.close()


@pytest.mark.asyncio
async def test_payload_count_mismatch_is_transport_error() -> None:
    client = RpcClient(_StaticTransport(payloads=1), call_timeout=1.0)
    with pytest.raises(PogoTransportError):
        await client.call(_envelope(client, RequestType.GET_MAP_OBJECTS, RequestType.GET_INVENTORY))
    await client.close()


@pytest.mark.asyncio
async def test_unexpected_transport_exception_is_wrapped() -> None:
    client = RpcClient(_BrokenTransport(), call_timeout=1.0)

    with pytest.raises(PogoTransportError) as excinfo:
        await client.call(_envelope(client))

    assert isinstance(excinfo.value.__cause__, RuntimeError)
    await client.close()


@pytest.mark.asyncio
async def test_batch_payloads_come_back_in_request_order() -> None:
    client = RpcClient(_StaticTransport(), call_timeout=1.0)
    envelope = _envelope(client, RequestType.GET_HATCHED_EGGS, RequestType.GET_INVENTORY, RequestType.DOWNLOAD_SETTINGS)

    payloads = await client.call(envelope)

    assert len(payloads) == 3
    await client.close()
