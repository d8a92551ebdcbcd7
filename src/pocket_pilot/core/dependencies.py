import hmac
from typing import Optional
from fastapi import Header, HTTPException, Request, status
from pocket_pilot.config.app_config import ServiceSettings
from pocket_pilot.agent_service.core_agent.agent_runtime import AgentRuntime
from pocket_pilot.human_auth.bridge import HumanAuthBridge
from pocket_pilot.human_auth.relay_store import HumanAuthRelayStore

# This is the location to conveniently return any app lifetime dependencies to be used in routes
def get_settings(request: Request) -> ServiceSettings:
    """
    FastAPI dependency to get the service settings the app was started with.
    """
    return request.app.state.settings

def get_agent_runtime(request: Request) -> AgentRuntime:
    """
    FastAPI dependency to get the shared agent runtime from the application state.
    """
    return request.app.state.agent_runtime

def get_human_auth_bridge(request: Request) -> HumanAuthBridge:
    """
    FastAPI dependency to get the shared human auth bridge from the application state.
    """
    return request.app.state.human_auth_bridge

def get_relay_store(request: Request) -> HumanAuthRelayStore:
    return request.app.state.relay_store

def bearer_matches(authorization: Optional[str], api_key: str) -> bool:
    # no key configured means the surface is open (local development)
    if not api_key:
        return True
    if not authorization or not authorization.startswith("Bearer "):
        return False
    return hmac.compare_digest(authorization[len("Bearer "):].strip(), api_key)

def require_operator_key(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    """
    FastAPI dependency guarding the task and operator routes with the operator Bearer key.
    """
    if not bearer_matches(authorization, get_settings(request).resolve_operator_api_key()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized.",
            headers={"WWW-Authenticate": "Bearer"},
        )
