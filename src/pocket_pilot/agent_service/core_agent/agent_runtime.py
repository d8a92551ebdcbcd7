# agent runtime, a.k.a. the entrypoint for running one task on the device
# owns the step loop: snapshot -> next action -> (human auth | device | script) -> repeat

# single-flight: at most one task runs per runtime instance, a second caller gets a "busy" result
# cancellation is cooperative: request_stop() is only checked at the top of each step

import asyncio
import time
from typing import Awaitable, Callable, Optional

from pocket_pilot.agent_service.common.system_prompts.device_agent_prompts import DeviceAgentPrompts
from pocket_pilot.agent_service.common.types.actions import (
    AgentAction,
    FinishAction,
    HumanAuthCapability,
    KeyEventAction,
    RequestHumanAuthAction,
    RunScriptAction,
    SwipeAction,
    TapAction,
    WaitAction,
)
from pocket_pilot.agent_service.common.types.agent_outputs import (
    AgentProgressUpdate,
    AgentRunResult,
    ModelStepOutput,
    ProgressReporter,
    TaskStatus,
)
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.device_control.image_scale import scale_coordinates
from pocket_pilot.common.services.device_control.protocols import DeviceController, ScreenSnapshot
from pocket_pilot.common.services.llm_service.llm_client.dispatcher import create_step_model_client
from pocket_pilot.common.services.llm_service.llm_client.protocols import StepModelProtocol
from pocket_pilot.common.services.script_executor.script_executor import ScriptExecutor
from pocket_pilot.config.app_config import ServiceSettings
from pocket_pilot.human_auth.delegation import apply_human_auth_delegation, tap_permission_dialog
from pocket_pilot.human_auth.types import HumanAuthChannel, HumanAuthDecision, HumanAuthRequest
from pocket_pilot.memory.workspace import SessionHandle, WorkspaceStore

BUSY_MESSAGE = "Agent is busy. Please retry later."
STOPPED_MESSAGE = "Task stopped by user."
HUMAN_AUTH_RESUME_DELAY_MS = 1200

ModelClientFactory = Callable[..., StepModelProtocol]
SleepFn = Callable[[float], Awaitable[None]]

def compact(text: str, limit: int = 300) -> str:
    """Single-line, bounded version of a result for the model's history window."""
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else f"{flat[:limit]}..."

class LoggingProgressReporter:
    """Default progress sink for background tasks: one log line per reported step."""
    async def report(self, update: AgentProgressUpdate) -> None:
        logger.info(
            f"[progress] step {update.step}/{update.max_steps} app={update.current_app} "
            f"action={update.action_type}: {compact(update.message, 200)}"
        )

class _TaskRun:
    """Mutable per-task state, discarded when run_task returns."""
    def __init__(self, task: str, profile_name: str):
        self.task = task
        self.profile_name = profile_name
        self.session: Optional[SessionHandle] = None
        self.snapshot_taken = False
        self.device_id: Optional[str] = None
        self.history: list[str] = []

class AgentRuntime():
    """
    Drives one task to completion step by step.
    - The runtime lives for the whole service (app state); per-task state lives in _TaskRun.
    - Model clients are created per task so the endpoint mode hint never leaks across tasks.
    """
    def __init__(
        self,
        settings: ServiceSettings,
        device: DeviceController,
        workspace: WorkspaceStore,
        script_executor: ScriptExecutor,
        human_auth_channel: Optional[HumanAuthChannel] = None,
        model_client_factory: ModelClientFactory = create_step_model_client,
        sleep: SleepFn = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.device = device
        self.workspace = workspace
        self.script_executor = script_executor
        self.human_auth_channel = human_auth_channel
        self.model_client_factory = model_client_factory
        self.prompts = DeviceAgentPrompts()
        self._sleep = sleep
        self._clock = clock

        self._busy = False
        self._stop_requested = False
        self._current_task: Optional[str] = None
        self._started_at: Optional[float] = None
        self._last_result: Optional[AgentRunResult] = None
        self._last_auto_escalation_at: Optional[float] = None
        self._background_task: Optional[asyncio.Task] = None

    # =====================================================================
    # PUBLIC SURFACE
    # =====================================================================

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def current_task(self) -> Optional[str]:
        return self._current_task

    def request_stop(self) -> bool:
        """Ask the running task to stop at its next step. False when nothing is running."""
        if not self._busy:
            return False
        self._stop_requested = True
        logger.info(f"Stop requested for task: {self._current_task}")
        return True

    async def shutdown(self) -> None:
        """Cancel a scheduled/running background task (service shutdown)."""
        task = self._background_task
        if task is None or task.done():
            return
        self.request_stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Background task cancelled on shutdown.")

    def status(self) -> TaskStatus:
        runtime_ms = None
        if self._busy and self._started_at is not None:
            runtime_ms = int((self._clock() - self._started_at) * 1000)
        return TaskStatus(
            busy=self._busy,
            task=self._current_task,
            runtime_ms=runtime_ms,
            last_result=self._last_result,
        )

    def start_background_task(
        self,
        task: str,
        model_name: Optional[str] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[asyncio.Task]:
        """
        Schedule run_task on the event loop. None when a task is running or already scheduled.
        """
        if self._busy or (self._background_task is not None and not self._background_task.done()):
            return None
        self._background_task = asyncio.create_task(self.run_task(task, model_name, progress))
        logger.info(f"Background task scheduled: {task}")
        return self._background_task

    async def run_task(
        self,
        task: str,
        model_name: Optional[str] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> AgentRunResult:
        if self._busy:
            logger.info(f"Rejected task while busy: {task}")
            return AgentRunResult(ok=False, message=BUSY_MESSAGE)

        # NOTE: claim the runtime before the first await
        self._busy = True
        self._stop_requested = False
        self._current_task = task
        self._started_at = self._clock()
        self._last_auto_escalation_at = None

        run = _TaskRun(task=task, profile_name=model_name or self.settings.DEFAULT_MODEL_PROFILE)
        try:
            try:
                result = await self._run_loop(run, progress)
            except Exception as e:
                logger.exception(f"Agent execution failed for task '{task}'")
                result = AgentRunResult(ok=False, message=f"Agent execution failed: {e}")

            result = await self._finalize(run, result)
            self._last_result = result
            logger.info(f"Task finished ok={result.ok}: {result.message}")
            return result
        finally:
            self._busy = False
            self._stop_requested = False
            self._current_task = None
            self._started_at = None

    # =====================================================================
    # STEP LOOP
    # =====================================================================

    async def _run_loop(self, run: _TaskRun, progress: Optional[ProgressReporter]) -> AgentRunResult:
        settings = self.settings
        try:
            profile = settings.get_model_profile(run.profile_name)
        except KeyError as e:
            return AgentRunResult(ok=False, message=str(e.args[0]))

        run.session = self.workspace.create_session(run.task, run.profile_name, profile.model)
        logger.info(f"Task started (profile={run.profile_name}, model={profile.model}): {run.task}")

        api_key = profile.resolve_api_key()
        if not api_key:
            return AgentRunResult(
                ok=False,
                message=(
                    f"Missing API key for model profile '{run.profile_name}'. "
                    f"Set api_key in the profile or the {profile.api_key_env or 'API key'} environment variable."
                ),
            )

        model_client = self.model_client_factory(profile, api_key, history_window=settings.AGENT_HISTORY_WINDOW)
        max_steps = settings.AGENT_MAX_STEPS

        for step in range(1, max_steps + 1):
            if self._stop_requested:
                return AgentRunResult(ok=False, message=STOPPED_MESSAGE)

            snapshot = await self.device.capture_snapshot(settings.AGENT_DEVICE_SERIAL, profile.model)
            run.snapshot_taken = True
            run.device_id = snapshot.device_id

            from_permission_dialog = snapshot.current_app in settings.AGENT_PERMISSION_DIALOG_PACKAGES
            output = self._auto_escalation(snapshot) if from_permission_dialog else None
            if output is None:
                output = await self._next_step(model_client, run, step, snapshot)
            action = output.action

            if isinstance(action, FinishAction):
                self._record_step(run, step, output.thought, action, f"FINISH: {action.message}")
                await self._report(progress, step, max_steps, snapshot, action, action.message, output.thought, force=True)
                return AgentRunResult(ok=True, message=action.message)

            if isinstance(action, RequestHumanAuthAction):
                failure = await self._handle_human_auth(run, step, snapshot, action, output.thought, from_permission_dialog)
                await self._report(progress, step, max_steps, snapshot, action, run.history[-1], output.thought)
                if failure is not None:
                    return failure
                await self._sleep(min(settings.AGENT_LOOP_DELAY_MS, HUMAN_AUTH_RESUME_DELAY_MS) / 1000)
                continue

            result = await self._execute_action(action, snapshot)
            self._record_step(run, step, output.thought, action, result)
            run.history.append(f"step {step}: app={snapshot.current_app} action={action.type} result={compact(result)}")
            await self._report(progress, step, max_steps, snapshot, action, result, output.thought)

            if not isinstance(action, WaitAction):
                await self._sleep(settings.AGENT_LOOP_DELAY_MS / 1000)

        return AgentRunResult(ok=False, message=f"Max steps reached ({max_steps})")

    async def _next_step(
        self,
        model_client: StepModelProtocol,
        run: _TaskRun,
        step: int,
        snapshot: ScreenSnapshot,
    ) -> ModelStepOutput:
        # NOTE: ModelEndpointExhaustedError propagates and fails the task
        return await model_client.next_step(
            system_prompt=self.prompts.system_prompt,
            task=run.task,
            step=step,
            snapshot=snapshot,
            history=run.history,
        )

    def _auto_escalation(self, snapshot: ScreenSnapshot) -> Optional[ModelStepOutput]:
        """
        A system permission dialog is on screen: ask a human instead of the model.
        Rate limited by AGENT_AUTO_ESCALATION_COOLDOWN_SEC; the cooldown resets per task.
        """
        if self.human_auth_channel is None:
            return None
        now = self._clock()
        last = self._last_auto_escalation_at
        if last is not None and now - last < self.settings.AGENT_AUTO_ESCALATION_COOLDOWN_SEC:
            return None
        self._last_auto_escalation_at = now
        logger.info(f"Permission dialog detected in {snapshot.current_app}, escalating to a human.")
        return ModelStepOutput(
            thought=f"System permission dialog detected ({snapshot.current_app}). Asking a human to decide.",
            action=RequestHumanAuthAction(
                capability=HumanAuthCapability.PERMISSION,
                instruction=(
                    f"A system permission dialog is showing ({snapshot.current_app}). "
                    "Approve to allow it on the device, or reject to deny it."
                ),
                timeout_sec=self.settings.HUMAN_AUTH_REQUEST_TIMEOUT_SEC,
                reason="auto_permission_dialog",
            ),
        )

    # =====================================================================
    # ACTION HANDLING
    # =====================================================================

    def _to_device_coordinates(self, action: AgentAction, snapshot: ScreenSnapshot) -> AgentAction:
        """Map tap/swipe coordinates from the scaled screenshot back to device pixels."""
        def scale(x: float, y: float) -> tuple[int, int]:
            return scale_coordinates(x, y, snapshot.scale_x, snapshot.scale_y, snapshot.width, snapshot.height)

        if isinstance(action, TapAction):
            x, y = scale(action.x, action.y)
            return action.model_copy(update={"x": x, "y": y})
        if isinstance(action, SwipeAction):
            x1, y1 = scale(action.x1, action.y1)
            x2, y2 = scale(action.x2, action.y2)
            return action.model_copy(update={"x1": x1, "y1": y1, "x2": x2, "y2": y2})
        return action

    async def _execute_action(self, action: AgentAction, snapshot: ScreenSnapshot) -> str:
        """
        Execution errors become the step result, the model gets a chance to recover next step.
        """
        try:
            if isinstance(action, RunScriptAction):
                script_result = await self.script_executor.execute(action.script, action.timeout_sec)
                return script_result.summary()
            device_action = self._to_device_coordinates(action, snapshot)
            return await self.device.execute(device_action, snapshot.device_id)
        except Exception as e:
            logger.warning(f"Action {action.type} failed: {e}")
            return f"Action execution error: {e}"

    async def _handle_human_auth(
        self,
        run: _TaskRun,
        step: int,
        snapshot: ScreenSnapshot,
        action: RequestHumanAuthAction,
        thought: str,
        from_permission_dialog: bool,
    ) -> Optional[AgentRunResult]:
        """
        Suspend on the human auth channel. Returns a failed result, or None to keep going.
        """
        capability = action.capability.value
        if self.human_auth_channel is None:
            message = f"Human authorization required ({capability}), but no human auth handler is configured."
            self._record_step(run, step, thought, action, message)
            run.history.append(f"step {step}: app={snapshot.current_app} action={action.type} result={message}")
            return AgentRunResult(ok=False, message=message)

        request = HumanAuthRequest(
            session_id=run.session.id if run.session else "",
            session_path=str(run.session.path) if run.session else "",
            task=run.task,
            step=step,
            capability=action.capability,
            instruction=action.instruction,
            reason=action.reason or "",
            timeout_sec=round(action.timeout_sec),
            current_app=snapshot.current_app,
        )
        logger.info(f"Human auth requested ({capability}) request_id={request.request_id}")
        try:
            decision = await self.human_auth_channel.request(request)
        except Exception as e:
            # a broken channel ends the step like a rejection
            logger.warning(f"Human auth channel failed for {request.request_id}: {e}")
            decision = HumanAuthDecision(
                request_id=request.request_id,
                status="rejected",
                message=f"Human auth bridge error: {e}",
            )

        lines = [f"Human auth {decision.status} request_id={decision.request_id} message={decision.message}"]
        if not decision.approved:
            if from_permission_dialog:
                try:
                    lines.append(await tap_permission_dialog(self.device, "deny", snapshot.device_id))
                except Exception as e:
                    logger.warning(f"Permission dialog deny tap failed: {e}")
                    lines.append(f"permission dialog deny failed: {e}")
            result = "\n".join(lines)
            self._record_step(run, step, thought, action, result)
            run.history.append(f"step {step}: app={snapshot.current_app} action={action.type} result={compact(result)}")
            return AgentRunResult(ok=False, message=f"Human authorization {decision.status}: {decision.message}")

        delegation = await apply_human_auth_delegation(
            self.device,
            request,
            decision,
            device_id=snapshot.device_id,
            permission_packages=self.settings.AGENT_PERMISSION_DIALOG_PACKAGES,
        )
        lines.extend(delegation.lines)
        result = "\n".join(lines)
        self._record_step(run, step, thought, action, result)
        run.history.append(f"step {step}: app={snapshot.current_app} action={action.type} result={compact(result)}")
        run.history.extend(f"step {step}: {hint}" for hint in delegation.history_hints)
        return None

    # =====================================================================
    # RECORDING / FINALIZE
    # =====================================================================

    def _record_step(self, run: _TaskRun, step: int, thought: str, action: AgentAction, result: str) -> None:
        logger.info(f"step {step}: action={action.type} result={compact(result, 200)}")
        if run.session is not None:
            self.workspace.append_step(run.session, step, thought, action.model_dump_json(indent=2), result)

    async def _report(
        self,
        progress: Optional[ProgressReporter],
        step: int,
        max_steps: int,
        snapshot: ScreenSnapshot,
        action: AgentAction,
        message: str,
        thought: str,
        force: bool = False,
    ) -> None:
        if progress is None:
            return
        interval = max(1, self.settings.AGENT_PROGRESS_REPORT_INTERVAL)
        if not force and step % interval != 0:
            return
        try:
            await progress.report(
                AgentProgressUpdate(
                    step=step,
                    max_steps=max_steps,
                    current_app=snapshot.current_app,
                    action_type=action.type,
                    message=message,
                    thought=thought,
                )
            )
        except Exception as e:
            # progress sinks never affect the task
            logger.debug(f"Progress report failed: {e}")

    async def _return_home(self, run: _TaskRun) -> None:
        if not run.snapshot_taken or not self.settings.AGENT_RETURN_HOME_ON_TASK_END:
            return
        try:
            await self.device.execute(KeyEventAction(keycode="KEYCODE_HOME", reason="return_home"), run.device_id)
        except Exception as e:
            logger.warning(f"Return to home screen failed: {e}")

    async def _finalize(self, run: _TaskRun, result: AgentRunResult) -> AgentRunResult:
        """
        Same sequence on every terminal path; nothing here may replace the original result.
        """
        if run.session is not None:
            try:
                self.workspace.finalize_session(run.session, result.ok, result.message)
            except Exception as e:
                logger.warning(f"Could not finalize session log: {e}")
            result = result.model_copy(update={"session_path": str(run.session.path)})

        try:
            self.workspace.append_daily_memory(run.profile_name, run.task, result.ok, result.message)
        except Exception as e:
            logger.warning(f"Could not append daily memory: {e}")

        await self._return_home(run)
        return result

