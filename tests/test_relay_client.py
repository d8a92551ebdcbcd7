import json

import httpx
import pytest

from pocket_pilot.agent_service.common.types.actions import HumanAuthCapability
from pocket_pilot.human_auth.relay_client import HumanAuthRelayClient, RelayClientError
from pocket_pilot.human_auth.types import HumanAuthRequest


def make_request():
    return HumanAuthRequest(request_id="auth-1", task="log in", step=2, capability=HumanAuthCapability.SMS, instruction="code")


def client_for(handler, **kwargs):
    return HumanAuthRelayClient("https://relay.example/", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.asyncio
async def test_create_sends_bearer_and_body():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "request_id": "auth-1",
            "open_url": "https://relay.example/human-auth/auth-1?token=t",
            "poll_token": "p",
            "expires_at": "2026-01-01T00:05:00Z",
        })

    client = client_for(handler, api_key="secret", public_base_url="https://public.example/")
    created = await client.create_request(make_request())
    await client.close()

    assert created.poll_token == "p"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["capability"] == "sms"
    assert seen["body"]["public_base_url"] == "https://public.example"


@pytest.mark.asyncio
async def test_create_rejects_mismatched_id():
    def handler(request):
        return httpx.Response(200, json={
            "request_id": "other",
            "open_url": "x",
            "poll_token": "p",
            "expires_at": "2026-01-01T00:05:00Z",
        })

    client = client_for(handler)
    with pytest.raises(RelayClientError):
        await client.create_request(make_request())
    await client.close()


@pytest.mark.asyncio
async def test_poll_passes_token_and_maps_errors():
    def handler(request: httpx.Request):
        if request.url.params.get("pollToken") != "p":
            return httpx.Response(403, json={"error": "Invalid poll token."})
        return httpx.Response(200, json={"request_id": "auth-1", "status": "pending"})

    client = client_for(handler)
    polled = await client.poll("auth-1", "p")
    assert polled.status == "pending"

    with pytest.raises(RelayClientError) as excinfo:
        await client.poll("auth-1", "wrong")
    assert "403" in str(excinfo.value)
    await client.close()


@pytest.mark.asyncio
async def test_non_json_body():
    client = client_for(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(RelayClientError):
        await client.poll("auth-1", "p")
    await client.close()
