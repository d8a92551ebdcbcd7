# HTTP client for the human auth web relay

from typing import Any, Optional
import httpx

from pocket_pilot.api.response_models.human_auth import RelayCreateResponse, RelayPollResponse
from pocket_pilot.human_auth.types import HumanAuthRequest

class RelayClientError(RuntimeError):
    """Relay request failed or returned something unusable."""

class HumanAuthRelayClient:
    """
    Creates requests on the relay and polls them for a decision.
    Authenticates with a Bearer key when one is configured.
    """
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str = "",
        public_base_url: str = "",
        timeout_sec: float = 15,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._public_base_url = public_base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout_sec,
            transport=transport,
        )

    def configured(self) -> bool:
        return bool(self._base_url)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise RelayClientError(f"Relay {method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise RelayClientError(f"Relay {method} {path} failed {response.status_code}: {response.text[:300]}")
        try:
            payload = response.json()
        except ValueError as e:
            raise RelayClientError(f"Relay {method} {path} returned non-JSON body.") from e
        if not isinstance(payload, dict):
            raise RelayClientError(f"Relay {method} {path} response is not an object.")
        return payload

    async def create_request(self, request: HumanAuthRequest) -> RelayCreateResponse:
        body = {
            "request_id": request.request_id,
            "task": request.task,
            "session_id": request.session_id,
            "step": request.step,
            "capability": request.capability.value,
            "instruction": request.instruction,
            "reason": request.reason,
            "timeout_sec": request.timeout_sec,
            "current_app": request.current_app,
            "screenshot_path": request.screenshot_path,
            "public_base_url": self._public_base_url or None,
        }
        payload = await self._request("POST", "/v1/human-auth/requests", json=body)
        try:
            created = RelayCreateResponse.model_validate(payload)
        except ValueError as e:
            raise RelayClientError(f"Relay create response missing required fields: {e}") from e
        if created.request_id != request.request_id:
            raise RelayClientError(
                f"Relay returned mismatched request id '{created.request_id}' (expected '{request.request_id}')."
            )
        return created

    async def poll(self, request_id: str, poll_token: str) -> RelayPollResponse:
        payload = await self._request(
            "GET",
            f"/v1/human-auth/requests/{request_id}",
            params={"pollToken": poll_token},
        )
        try:
            return RelayPollResponse.model_validate(payload)
        except ValueError as e:
            raise RelayClientError(f"Relay poll response malformed: {e}") from e
