"""RPC transport: JSON envelopes over HTTP."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from pypogo._constants import USER_AGENT
from pypogo._redact import redact_for_log
from pypogo.config import PogoConfig
from pypogo.exceptions import PogoTransportError
from pypogo.models.rpc import RequestEnvelope, ResponseEnvelope, ResponseStatus

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the session and dispatcher.

    ``send`` may return the reply to *any* envelope currently in flight;
    the dispatcher routes replies by ``request_id``. Having a protocol
    here makes it easy to pass test doubles while keeping the production
    implementation (`HttpRpcTransport`) concrete.
    """

    async def startup(self) -> None:
        ...

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        ...

    async def close(self) -> None:
        ...


def encode_envelope(envelope: RequestEnvelope) -> dict[str, Any]:
    """Build the JSON body for *envelope*; request messages are base64."""
    return {
        "requestId": envelope.request_id,
        "authInfo": {"token": envelope.auth_token},
        "latitude": envelope.location.latitude,
        "longitude": envelope.location.longitude,
        "altitude": envelope.location.altitude,
        "msSinceLastLocationfix": 0,
        "issuedAtMs": envelope.issued_at_ms,
        "locale": envelope.locale,
        "requests": [
            {
                "requestType": int(request.request_type),
                "requestMessage": base64.b64encode(request.message).decode("ascii"),
            }
            for request in envelope.requests
        ],
    }


def decode_response(body: Any, *, endpoint: str) -> ResponseEnvelope:
    """Parse a decoded JSON reply into a :class:`ResponseEnvelope`."""
    if not isinstance(body, dict):
        raise PogoTransportError(f"Reply from {endpoint} is not a JSON object")
    request_id = body.get("requestId")
    if not isinstance(request_id, int):
        raise PogoTransportError(f"Reply from {endpoint} carries no requestId")

    raw_returns = body.get("returns") or []
    if not isinstance(raw_returns, list):
        raise PogoTransportError(f"Reply from {endpoint} has non-list returns", request_id=request_id)
    try:
        returns = tuple(base64.b64decode(item, validate=True) for item in raw_returns)
    except (TypeError, ValueError, binascii.Error) as exc:
        raise PogoTransportError(f"Reply from {endpoint} has invalid base64 returns", request_id=request_id) from exc

    try:
        return ResponseEnvelope(
            request_id=request_id,
            status=body.get("statusCode", ResponseStatus.UNSET),
            returns=returns,
            api_url=body.get("apiUrl") or None,
            error=body.get("error") or None,
        )
    except ValidationError as exc:
        raise PogoTransportError(f"Malformed reply from {endpoint}: {exc}", request_id=request_id) from exc


class HttpRpcTransport:
    """HTTP transport that posts one envelope per request and follows ``apiUrl`` redirects."""

    def __init__(
        self,
        config: PogoConfig,
        http_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._config = config
        self._external_session = http_session is not None
        self._http = http_session
        self._api_url = config.api_url

    @property
    def api_url(self) -> str:
        return self._api_url

    async def startup(self) -> None:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self._config.call_timeout))
            self._external_session = False
        self._api_url = self._config.api_url

    async def close(self) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
        self._http = None

    def _follow_redirect(self, api_url: str) -> None:
        url = api_url if api_url.startswith(("http://", "https://")) else f"https://{api_url}/rpc"
        if url != self._api_url:
            _logger.debug("RPC endpoint moved to %s", url)
            self._api_url = url

    async def send(self, envelope: RequestEnvelope) -> ResponseEnvelope:
        """POST *envelope* and return the decoded reply.

        Raises
        ------
        PogoTransportError
            Network failure, non-200 status or an undecodable reply.
        """
        if self._http is None:
            raise PogoTransportError("Transport not started", request_id=envelope.request_id)

        url = self._api_url
        wire = encode_envelope(envelope)
        body = json.dumps(wire, separators=(",", ":"))
        headers = {
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }

        _logger.debug("POST %s body=%s", url, redact_for_log(wire, max_string=64))

        try:
            async with self._http.post(url, data=body, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise PogoTransportError(
                        f"HTTP {resp.status} from {url}: {text[:200]}",
                        status_code=resp.status,
                        request_id=envelope.request_id,
                    )
        except PogoTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise PogoTransportError(
                f"Request to {url} failed: {exc!r}",
                request_id=envelope.request_id,
            ) from exc

        try:
            parsed = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PogoTransportError(
                f"Invalid JSON from {url}: {text[:200]}",
                request_id=envelope.request_id,
            ) from exc
        _logger.debug("Reply from %s parsed=%s", url, redact_for_log(parsed, max_string=64))

        response = decode_response(parsed, endpoint=url)
        if response.api_url:
            self._follow_redirect(response.api_url)
        return response
