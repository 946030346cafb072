from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from fakes import LONDON, FakeHttpSession, quiet_config
from pypogo import (
    FileCredentialStore,
    HttpRpcTransport,
    OAuthPasswordProvider,
    RequestType,
    SessionState,
    UpdateCategory,
    UpdateEvent,
    get_session,
)


@dataclass
class FakeGameServer:
    inventory: bytes = b"inventory-1"
    token_requests: int = 0
    rpc_requests: int = 0

    def token(self, _url: str, data: Any) -> tuple[int, Any]:
        self.token_requests += 1
        assert data["grant_type"] in {"password", "refresh_token"}
        return 200, {
            "access_token": f"bearer-{self.token_requests}",
            "expires_in": 3600,
            "refresh_token": "refresh-alice",
        }

    def rpc(self, _url: str, data: Any) -> tuple[int, Any]:
        self.rpc_requests += 1
        body = json.loads(data)
        assert body["authInfo"]["token"].startswith("bearer-")
        returns = [self._payload(request["requestType"]) for request in body["requests"]]
        return 200, {
            "requestId": body["requestId"],
            "statusCode": 1,
            "returns": [base64.b64encode(payload).decode() for payload in returns],
        }

    def _payload(self, request_type: int) -> bytes:
        if request_type == RequestType.GET_INVENTORY:
            return self.inventory
        if request_type == RequestType.GET_MAP_OBJECTS:
            return b"map-1"
        return f"type-{request_type}".encode()


@pytest.mark.e2e
@pytest.mark.asyncio
async def test_login_cache_resume_dispatch_and_updates(tmp_path: Path) -> None:
    server = FakeGameServer()
    config = quiet_config(api_url="https://rpc.example.com/plfe/rpc")
    store = FileCredentialStore(tmp_path, secret_key="cache-secret")
    provider = OAuthPasswordProvider(
        name="ptc",
        token_url="https://sso.example.com/oauth2/token",
        client_id="mobile-app",
        http_session=FakeHttpSession(handler=server.token),  # type: ignore[arg-type]
    )

    session = await get_session(
        provider,
        "alice",
        "hunter2",
        LONDON,
        store=store,
        may_cache=True,
        config=config,
        transport=HttpRpcTransport(config, http_session=FakeHttpSession(handler=server.rpc)),  # type: ignore[arg-type]
    )
    first_credential = session.credential
    inventory_events: list[UpdateEvent] = []
    session.subscribe(UpdateCategory.INVENTORY_CHANGED, inventory_events.append)

    async with session:
        assert await session.dispatch(RequestType.FORT_DETAILS, b"fort") == b"type-104"

        server.inventory = b"inventory-2"
        assert await session.heartbeat.beat()
        await session.notifier.join()

    assert session.state is SessionState.CLOSED
    assert len(inventory_events) == 1
    assert server.token_requests == 1
    assert "bearer-1" not in (tmp_path / "alice-ptc.json").read_text(encoding="utf-8")

    resumed = await get_session(
        provider,
        "alice",
        "",
        LONDON,
        store=store,
        may_cache=True,
        config=config,
        transport=HttpRpcTransport(config, http_session=FakeHttpSession(handler=server.rpc)),  # type: ignore[arg-type]
    )
    async with resumed:
        assert await resumed.dispatch(RequestType.FORT_DETAILS) == b"type-104"

    assert server.token_requests == 1
    assert resumed.credential == first_credential
    await provider.close()
