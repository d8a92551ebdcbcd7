from contextlib import asynccontextmanager, AsyncExitStack
from fastapi import FastAPI
from pocket_pilot.config.app_config import get_service_settings
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.droidrun_tools import DroidRunDeviceController
from pocket_pilot.common.services.script_executor.script_executor import ScriptExecutor
from pocket_pilot.memory.workspace import WorkspaceStore
from pocket_pilot.human_auth.bridge import HumanAuthBridge
from pocket_pilot.human_auth.commands import log_opened_request
from pocket_pilot.human_auth.relay_client import HumanAuthRelayClient
from pocket_pilot.human_auth.relay_store import HumanAuthRelayStore
from pocket_pilot.agent_service.core_agent.agent_runtime import AgentRuntime

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages the service's startup and shutdown events.
    Uses the AsyncExitStack to clean up resources.
    Register resources to the app state to be used as dependencies.

    NOTE:
    - Use stack.enter_async_context when the resource has __aenter__ and __aexit__ support
    - Use stack.push_async_callback to register the clean up method only
    """
    # default start up message
    logger.info(f"Starting Pocket Pilot service!")

    # initialize resources during start up
    logger.info("Initializing service resources...")
    settings = get_service_settings()
    app.state.settings = settings

    async with AsyncExitStack() as stack:

        # workspace (session logs + daily memory) and the run_script executor
        workspace = WorkspaceStore(settings.WORKSPACE_DIR)
        script_executor = ScriptExecutor(
            settings.WORKSPACE_DIR,
            enabled=settings.SCRIPT_EXECUTOR_ENABLED,
            timeout_sec=settings.SCRIPT_EXECUTOR_TIMEOUT_SEC,
            max_output_chars=settings.SCRIPT_EXECUTOR_MAX_OUTPUT_CHARS,
            allowed_commands=settings.SCRIPT_EXECUTOR_ALLOWED_COMMANDS,
        )
        logger.info(f"Workspace initialized at {settings.WORKSPACE_DIR}.")

        # DroidRun device controller (no auth required)
        device_controller = DroidRunDeviceController(device_serial=settings.AGENT_DEVICE_SERIAL)
        app.state.device_controller = device_controller
        logger.info("DroidRun device controller initialized.")

        # relay records, served by this app's relay routes
        app.state.relay_store = HumanAuthRelayStore(settings.HUMAN_AUTH_RELAY_STATE_FILE)

        # relay client: an external relay wins over the local one
        relay_base_url = settings.HUMAN_AUTH_RELAY_BASE_URL or (
            settings.HUMAN_AUTH_LOCAL_RELAY_URL if settings.HUMAN_AUTH_LOCAL_RELAY_ENABLED else ""
        )
        relay_client = None
        if settings.HUMAN_AUTH_ENABLED and relay_base_url:
            relay_client = HumanAuthRelayClient(
                relay_base_url,
                api_key=settings.resolve_human_auth_api_key(),
                public_base_url=settings.HUMAN_AUTH_PUBLIC_BASE_URL,
            )
            stack.push_async_callback(relay_client.close)
            logger.info(f"Human auth relay client initialized ({relay_base_url}).")

        # human auth bridge, operator routes always see it; the runtime only when enabled
        human_auth_bridge = HumanAuthBridge(
            relay_client=relay_client,
            artifact_dir=settings.HUMAN_AUTH_ARTIFACT_DIR,
            min_timeout_sec=settings.HUMAN_AUTH_MIN_TIMEOUT_SEC,
            max_timeout_sec=settings.HUMAN_AUTH_MAX_TIMEOUT_SEC,
            poll_interval_ms=settings.HUMAN_AUTH_POLL_INTERVAL_MS,
            on_opened=log_opened_request,
        )
        stack.push_async_callback(human_auth_bridge.shutdown)
        app.state.human_auth_bridge = human_auth_bridge
        logger.info(f"Human auth bridge initialized (enabled={settings.HUMAN_AUTH_ENABLED}).")

        # agent runtime, model clients are created per task
        agent_runtime = AgentRuntime(
            settings=settings,
            device=device_controller,
            workspace=workspace,
            script_executor=script_executor,
            human_auth_channel=human_auth_bridge if settings.HUMAN_AUTH_ENABLED else None,
        )
        stack.push_async_callback(agent_runtime.shutdown)
        app.state.agent_runtime = agent_runtime
        logger.info("Agent runtime initialized.")

        try:
            # lets FastAPI process requests during yield
            yield
        finally:
            # explicit resource clean up, otherwise automatically cleaned via exit stack
            logger.info("Shutting down service resources...")

        # The AsyncExitStack will automatically call the __aexit__ or registered cleanup
        # methods for all resources entered or pushed to it, in reverse order.
        logger.info("All global resources have been gracefully closed.")
