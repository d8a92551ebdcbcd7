# human authorization bridge
# A request stays pending until exactly one of these settles it:
# - an operator command (resolve_pending)
# - the web relay, via the poll loop
# - the deadline task (timeout)
# Whoever settles first wins; later attempts return False.

import asyncio
import base64
from datetime import datetime, timedelta
from pathlib import Path
from typing import Awaitable, Callable, Optional

from pocket_pilot.api.request_models.human_auth import RelayArtifactPayload
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.human_auth.relay_client import HumanAuthRelayClient, RelayClientError
from pocket_pilot.human_auth.types import (
    HumanAuthArtifact,
    HumanAuthChannel,
    HumanAuthChannelError,
    HumanAuthDecision,
    HumanAuthOpenContext,
    HumanAuthOpenedNotifier,
    HumanAuthPendingSummary,
    HumanAuthRequest,
    utc_now,
)

TIMEOUT_MESSAGE = "Human authorization timed out."

SleepFn = Callable[[float], Awaitable[None]]

def mime_to_extension(mime_type: str) -> str:
    normalized = mime_type.lower()
    if "png" in normalized:
        return "png"
    if "jpeg" in normalized or "jpg" in normalized:
        return "jpg"
    if "webp" in normalized:
        return "webp"
    if "json" in normalized:
        return "json"
    return "bin"

class _PendingEntry:
    def __init__(self, request: HumanAuthRequest, future: "asyncio.Future[HumanAuthDecision]", expires_at: datetime):
        self.request = request
        self.future = future
        self.expires_at = expires_at
        self.open_url: Optional[str] = None
        self.poll_token: Optional[str] = None
        self.deadline_task: Optional[asyncio.Task] = None
        self.poll_task: Optional[asyncio.Task] = None
        self.closed = False

class HumanAuthBridge(HumanAuthChannel):
    """
    Coordinates pending authorization requests across the operator and relay channels.
    """
    def __init__(
        self,
        *,
        relay_client: Optional[HumanAuthRelayClient] = None,
        artifact_dir: Optional[Path] = None,
        min_timeout_sec: int = 30,
        max_timeout_sec: int = 1800,
        poll_interval_ms: int = 2000,
        on_opened: Optional[HumanAuthOpenedNotifier] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.relay_client = relay_client
        self.artifact_dir = artifact_dir
        self.min_timeout_sec = min_timeout_sec
        self.max_timeout_sec = max(min_timeout_sec, max_timeout_sec)
        self.poll_interval_sec = max(0.05, poll_interval_ms / 1000)
        self.on_opened = on_opened
        self._sleep = sleep
        self._pending: dict[str, _PendingEntry] = {}

    @property
    def relay_enabled(self) -> bool:
        return self.relay_client is not None and self.relay_client.configured()

    def clamp_timeout(self, timeout_sec: float) -> int:
        return min(self.max_timeout_sec, max(self.min_timeout_sec, round(timeout_sec)))

    # =====================================================================
    # OPERATOR SURFACE
    # =====================================================================

    def list_pending(self) -> list[HumanAuthPendingSummary]:
        entries = sorted(self._pending.values(), key=lambda entry: entry.request.created_at)
        return [
            HumanAuthPendingSummary(
                request_id=entry.request.request_id,
                task=entry.request.task,
                capability=entry.request.capability,
                current_app=entry.request.current_app,
                created_at=entry.request.created_at,
                expires_at=entry.expires_at,
                relay_enabled=entry.poll_token is not None,
            )
            for entry in entries
        ]

    def resolve_pending(
        self,
        request_id: str,
        approved: bool,
        note: Optional[str] = None,
        actor: str = "operator",
        artifact: Optional[HumanAuthArtifact] = None,
    ) -> bool:
        """
        Settle a pending request. False when it is unknown or already settled.
        """
        entry = self._pending.get(request_id)
        if entry is None:
            return False
        message = (note or "").strip() or (f"Approved by {actor}." if approved else f"Rejected by {actor}.")
        return self._settle(
            entry,
            HumanAuthDecision(
                request_id=request_id,
                status="approved" if approved else "rejected",
                message=message,
                artifact=artifact,
            ),
        )

    # =====================================================================
    # CHANNEL SURFACE (used by the agent runtime)
    # =====================================================================

    async def request(self, request: HumanAuthRequest) -> HumanAuthDecision:
        """
        Open a request and wait for its single terminal decision.
        The timeout is clamped to [min_timeout_sec, max_timeout_sec] and always yields a `timeout` decision.
        """
        if request.request_id in self._pending:
            raise HumanAuthChannelError(f"Human auth request '{request.request_id}' is already pending.")
        timeout_sec = self.clamp_timeout(request.timeout_sec)
        request = request.model_copy(update={"timeout_sec": timeout_sec})
        loop = asyncio.get_running_loop()
        entry = _PendingEntry(
            request=request,
            future=loop.create_future(),
            expires_at=utc_now() + timedelta(seconds=timeout_sec),
        )
        self._pending[request.request_id] = entry
        entry.deadline_task = asyncio.create_task(self._expire_after(entry, timeout_sec))
        logger.info(
            f"[human-auth] opened {request.request_id} capability={request.capability.value} timeout={timeout_sec}s"
        )

        try:
            if self.relay_enabled:
                await self._open_on_relay(entry)
            await self._notify_opened(entry)
            return await entry.future
        finally:
            # waiter went away (cancelled task): don't leave timers running
            self._close(entry)

    async def shutdown(self) -> None:
        """Reject everything still pending so no task waits on a dead service."""
        for entry in list(self._pending.values()):
            self._settle(
                entry,
                HumanAuthDecision(
                    request_id=entry.request.request_id,
                    status="rejected",
                    message="Human authorization service shut down.",
                ),
            )

    # =====================================================================
    # HELPERS
    # =====================================================================

    def _settle(self, entry: _PendingEntry, decision: HumanAuthDecision) -> bool:
        if entry.closed or entry.future.done():
            return False
        entry.closed = True
        self._pending.pop(entry.request.request_id, None)
        entry.future.set_result(decision)
        self._cancel_tasks(entry)
        logger.info(f"[human-auth] {entry.request.request_id} -> {decision.status}: {decision.message}")
        return True

    def _close(self, entry: _PendingEntry) -> None:
        entry.closed = True
        self._pending.pop(entry.request.request_id, None)
        self._cancel_tasks(entry)

    def _cancel_tasks(self, entry: _PendingEntry) -> None:
        current = asyncio.current_task()
        for task in (entry.deadline_task, entry.poll_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    async def _expire_after(self, entry: _PendingEntry, timeout_sec: int) -> None:
        await self._sleep(timeout_sec)
        self._settle(
            entry,
            HumanAuthDecision(request_id=entry.request.request_id, status="timeout", message=TIMEOUT_MESSAGE),
        )

    async def _open_on_relay(self, entry: _PendingEntry) -> None:
        assert self.relay_client is not None
        try:
            created = await self.relay_client.create_request(entry.request)
        except RelayClientError as e:
            # manual operator commands still work without the relay
            logger.warning(f"[human-auth] relay create request failed: {e}")
            return

        entry.open_url = created.open_url
        entry.poll_token = created.poll_token
        entry.poll_task = asyncio.create_task(self._poll_relay(entry))

    async def _notify_opened(self, entry: _PendingEntry) -> None:
        if self.on_opened is None:
            return
        request_id = entry.request.request_id
        context = HumanAuthOpenContext(
            request_id=request_id,
            capability=entry.request.capability,
            instruction=entry.request.instruction,
            open_url=entry.open_url,
            expires_at=entry.expires_at,
            relay_enabled=entry.poll_token is not None,
            manual_approve_command=f"approve {request_id}",
            manual_reject_command=f"reject {request_id}",
        )
        try:
            await self.on_opened(context)
        except Exception as e:
            # notification is best-effort, the request stays open
            logger.warning(f"[human-auth] opened notification failed: {e}")

    async def _poll_relay(self, entry: _PendingEntry) -> None:
        assert self.relay_client is not None and entry.poll_token is not None
        request_id = entry.request.request_id

        while not entry.closed:
            if utc_now() > entry.expires_at:
                self._settle(
                    entry,
                    HumanAuthDecision(request_id=request_id, status="timeout", message=TIMEOUT_MESSAGE),
                )
                return

            try:
                polled = await self.relay_client.poll(request_id, entry.poll_token)
            except RelayClientError as e:
                logger.debug(f"[human-auth] relay poll failed for {request_id}: {e}")
            else:
                if polled.status != "pending":
                    default_message = {
                        "approved": "Approved from web link.",
                        "rejected": "Rejected from web link.",
                        "timeout": TIMEOUT_MESSAGE,
                    }[polled.status]
                    self._settle(
                        entry,
                        HumanAuthDecision(
                            request_id=request_id,
                            status=polled.status,
                            message=(polled.note or "").strip() or default_message,
                            artifact=self._artifact_from_relay(request_id, polled.artifact),
                            decided_at=polled.decided_at or utc_now(),
                        ),
                    )
                    return

            await self._sleep(self.poll_interval_sec)

    def _artifact_from_relay(
        self,
        request_id: str,
        payload: Optional[RelayArtifactPayload],
    ) -> Optional[HumanAuthArtifact]:
        if payload is None:
            return None
        if payload.kind == "text" and payload.text:
            return HumanAuthArtifact(kind="text", text=payload.text)
        if payload.kind == "geo" and payload.latitude is not None and payload.longitude is not None:
            return HumanAuthArtifact(kind="geo", latitude=payload.latitude, longitude=payload.longitude)
        if payload.kind == "image" and payload.base64:
            return self._save_image_artifact(request_id, payload.mime_type or "image/jpeg", payload.base64)
        return None

    def _save_image_artifact(self, request_id: str, mime_type: str, data_b64: str) -> Optional[HumanAuthArtifact]:
        if self.artifact_dir is None:
            logger.warning(f"[human-auth] no artifact dir configured, dropping image for {request_id}")
            return None
        try:
            self.artifact_dir.mkdir(parents=True, exist_ok=True)
            out_path = self.artifact_dir / f"{request_id}.{mime_to_extension(mime_type)}"
            out_path.write_bytes(base64.b64decode(data_b64))
        except (OSError, ValueError) as e:
            logger.warning(f"[human-auth] failed to save artifact for {request_id}: {e}")
            return None
        return HumanAuthArtifact(kind="image", path=str(out_path), mime_type=mime_type)
