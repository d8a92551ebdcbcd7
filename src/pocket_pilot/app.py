from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from typing import Any
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.config.app_config import get_service_settings
from pocket_pilot.core.lifespan import lifespan
from pocket_pilot.api.errors import register_error_handlers
from pocket_pilot.api.routes.tasks import router as tasks_router
from pocket_pilot.api.routes.operator_auth import router as operator_auth_router
from pocket_pilot.api.routes.relay import router as relay_router

# disable FastAPI docs for production/deployment
is_local = get_service_settings().INCLUDE_DOCS
logger.info(f"is_local (include FastAPI docs?): {is_local}")

docs_config: dict[str, Any] = {
    "docs_url": "/docs" if is_local else None,
    "redoc_url": "/redoc" if is_local else None,
    "openapi_url": "/openapi.json" if is_local else None,
}

# main app, asgi entrypoint
app = FastAPI(
    title="Pocket Pilot Service",
    description="Android task agent with human authorization escalation",
    version="0.1.0",
    lifespan=lifespan,
    **docs_config,
)

# add CORS middleware
# NOTE: the portal page posts back to the same origin, so this only matters for external operator UIs
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# every HTTPException answers with an {"error": ...} body
register_error_handlers(app)

# health endpoint
@app.get("/health")
async def health(request: Request):
    agent_runtime = request.app.state.agent_runtime
    bridge = request.app.state.human_auth_bridge
    return {
        "status": "ok",
        "busy": agent_runtime.is_busy,
        "human_auth_enabled": agent_runtime.human_auth_channel is not None,
        "pending_human_auth": len(bridge.list_pending()),
    }

app.include_router(tasks_router)
app.include_router(operator_auth_router)
app.include_router(relay_router)
