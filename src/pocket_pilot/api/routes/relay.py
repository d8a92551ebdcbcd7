# human auth web relay: create / poll / resolve requests, plus the portal page a human opens
# create is Bearer-authenticated (when a key is configured), poll uses the poll token,
# the portal page and resolve use the single-use open token

from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import HTMLResponse, PlainTextResponse
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.config.app_config import ServiceSettings
from pocket_pilot.api.errors import error_response
from pocket_pilot.core.dependencies import bearer_matches, get_relay_store, get_settings
from pocket_pilot.human_auth.portal_page import render_portal_page
from pocket_pilot.human_auth.relay_store import HumanAuthRelayStore, RelayStoreError

from pocket_pilot.api.response_models.human_auth import RelayCreateResponse, RelayPollResponse, RelayResolveResponse
from pocket_pilot.api.request_models.human_auth import RelayCreateRequest, RelayResolveRequest

router = APIRouter(tags=["Human Auth Relay"])

def build_open_url(request: Request, body: RelayCreateRequest, settings: ServiceSettings, request_id: str, token: str) -> str:
    base = (body.public_base_url or settings.HUMAN_AUTH_PUBLIC_BASE_URL or str(request.base_url)).rstrip("/")
    return f"{base}/human-auth/{quote(request_id, safe='')}?token={quote(token, safe='')}"

@router.get("/healthz")
async def healthz(store: HumanAuthRelayStore = Depends(get_relay_store)):
    return {"ok": True, "requests": len(store)}

@router.post("/v1/human-auth/requests", response_model=RelayCreateResponse)
async def create_request(
    body: RelayCreateRequest,
    request: Request,
    authorization: Optional[str] = Header(default=None),
    store: HumanAuthRelayStore = Depends(get_relay_store),
    settings: ServiceSettings = Depends(get_settings),
):
    if not bearer_matches(authorization, settings.resolve_human_auth_api_key()):
        return error_response(status.HTTP_401_UNAUTHORIZED, "Unauthorized.")

    try:
        record, open_token, poll_token = store.create(body)
    except RelayStoreError as e:
        return error_response(e.status_code, str(e))
    logger.info(f"[relay] created {record.request_id} capability={record.capability} expires={record.expires_at}")
    return RelayCreateResponse(
        request_id=record.request_id,
        open_url=build_open_url(request, body, settings, record.request_id, open_token),
        poll_token=poll_token,
        expires_at=record.expires_at,
    )

@router.get("/v1/human-auth/requests/{request_id}", response_model=RelayPollResponse)
async def poll_request(
    request_id: str,
    poll_token: Optional[str] = Query(default=None, alias="pollToken"),
    store: HumanAuthRelayStore = Depends(get_relay_store),
):
    try:
        record = store.poll(request_id, poll_token)
    except RelayStoreError as e:
        return error_response(e.status_code, str(e))
    return RelayPollResponse(
        request_id=record.request_id,
        status=record.status,
        note=record.note or None,
        decided_at=record.decided_at,
        artifact=record.artifact,
    )

@router.post("/v1/human-auth/requests/{request_id}/resolve", response_model=RelayResolveResponse)
async def resolve_request(
    request_id: str,
    body: RelayResolveRequest,
    store: HumanAuthRelayStore = Depends(get_relay_store),
):
    try:
        record = store.resolve(request_id, body.token, body.approved, body.note, body.artifact)
    except RelayStoreError as e:
        logger.info(f"[relay] resolve {request_id} refused: {e}")
        return error_response(e.status_code, str(e))

    logger.info(f"[relay] {request_id} resolved -> {record.status}")
    assert record.decided_at is not None
    return RelayResolveResponse(request_id=record.request_id, status=record.status, decided_at=record.decided_at)

@router.get("/human-auth/{request_id}", response_class=HTMLResponse)
async def portal_page(
    request_id: str,
    token: Optional[str] = Query(default=None),
    store: HumanAuthRelayStore = Depends(get_relay_store),
):
    try:
        record = store.open_for_portal(request_id, token)
    except RelayStoreError as e:
        return PlainTextResponse(str(e), status_code=e.status_code)
    # token is checked again on resolve, the page only embeds it
    return HTMLResponse(render_portal_page(record, token or ""))
