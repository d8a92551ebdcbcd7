"""
DroidRun-backed device controller for the task agent.

This wrapper provides:
1. Screen capture (DroidRun AdbTools screenshot, adb screencap as fallback) with model-specific downscaling
2. Execution of normalized agent actions on the device
3. Raw UI hierarchy dumps for the permission dialog resolver
4. Delegation helpers: emulator geo fix and pushing images into the device gallery

DroidRun components used:
- AdbTools: screenshot, swipe, start_app, input_text (Portal keyboard) and get_state
Everything AdbTools does not cover goes through a plain `adb` subprocess.
"""

import asyncio
import io
import re
import shlex
from pathlib import Path
from typing import Optional

from droidrun import AdbTools
from PIL import Image

from pocket_pilot.agent_service.common.types.actions import (
    AgentAction,
    FinishAction,
    KeyEventAction,
    LaunchAppAction,
    RequestHumanAuthAction,
    RunScriptAction,
    ShellAction,
    SwipeAction,
    TapAction,
    TypeAction,
    WaitAction,
)
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.device_control.image_scale import scale_screenshot
from pocket_pilot.common.services.device_control.protocols import DeviceControllerError, ScreenSnapshot

REMOTE_MEDIA_DIR = "/sdcard/Pictures"

_FOCUS_PATTERNS = [
    re.compile(r"mCurrentFocus=.*?\s([A-Za-z0-9_.]+)/"),
    re.compile(r"mFocusedApp=.*?\s([A-Za-z0-9_.]+)/"),
    re.compile(r"topResumedActivity=.*?\s([A-Za-z0-9_.]+)/"),
]

def encode_adb_text(text: str) -> str:
    """`input text` treats spaces as separators, %s is its escape for a space."""
    escaped = re.sub(r"([\\\"'`$&|;<>()*?!#~])", r"\\\1", text)
    return escaped.replace(" ", "%s")

def parse_current_app(dumpsys_output: str) -> str:
    for pattern in _FOCUS_PATTERNS:
        match = pattern.search(dumpsys_output)
        if match:
            return match.group(1)
    return "unknown"

class DroidRunDeviceController:
    """
    Device controller over DroidRun AdbTools plus adb.

    One AdbTools instance is kept per device serial and created on first use.
    All coordinates passed to execute() must already be device-native.
    """

    def __init__(
        self,
        device_serial: Optional[str] = None,
        use_tcp: bool = False,
        adb_path: str = "adb",
        command_timeout_sec: float = 30.0,
    ):
        """
        Initialize the controller.

        Args:
            device_serial: default Android device serial; when None the first attached device is used
            use_tcp: use TCP mode for Portal communication
            adb_path: adb executable
            command_timeout_sec: hard limit for each adb invocation
        """
        self.device_serial = device_serial
        self.use_tcp = use_tcp
        self.adb_path = adb_path
        self.command_timeout_sec = command_timeout_sec
        self._tools: dict[str, AdbTools] = {}

    # =====================================================================
    # ADB / DROIDRUN PLUMBING
    # =====================================================================

    async def _adb(self, args: list[str], serial: Optional[str] = None, timeout_sec: Optional[float] = None) -> bytes:
        """
        Run one adb command and return raw stdout.
        Raises DeviceControllerError on a missing binary, a timeout or a non-zero exit.
        """
        command = [self.adb_path]
        if serial:
            command += ["-s", serial]
        command += args

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DeviceControllerError(f"Failed to start adb: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_sec or self.command_timeout_sec)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.communicate()
            raise DeviceControllerError(f"adb command timed out: {' '.join(args)}") from e

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip() or stdout.decode("utf-8", errors="replace").strip()
            raise DeviceControllerError(f"adb {' '.join(args)} failed (exit {proc.returncode}): {detail}")
        return stdout

    async def _adb_shell(self, args: list[str], serial: str) -> str:
        output = await self._adb(["shell", *args], serial)
        return output.decode("utf-8", errors="replace").strip()

    async def resolve_serial(self, device_id: Optional[str] = None) -> str:
        serial = device_id or self.device_serial
        if serial:
            return serial

        output = (await self._adb(["devices"])).decode("utf-8", errors="replace")
        for line in output.splitlines()[1:]:
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                # NOTE: pin the first attached device for the rest of the process
                self.device_serial = parts[0]
                logger.info(f"Using attached device {parts[0]}")
                return parts[0]
        raise DeviceControllerError("No Android device connected. Check `adb devices`.")

    def _get_tools(self, serial: str) -> AdbTools:
        if serial not in self._tools:
            self._tools[serial] = AdbTools(serial=serial, use_tcp=self.use_tcp)
        return self._tools[serial]

    # =====================================================================
    # OBSERVATION
    # =====================================================================

    async def _capture_png(self, serial: str) -> bytes:
        try:
            _, screenshot_bytes = await self._get_tools(serial).take_screenshot(hide_overlay=True)
            if screenshot_bytes:
                return screenshot_bytes
        except Exception as e:
            logger.warning(f"DroidRun screenshot failed on {serial}, falling back to screencap: {e}")
        return await self._adb(["exec-out", "screencap", "-p"], serial)

    async def get_current_app(self, serial: str) -> str:
        """Foreground package, from the Portal state when available, otherwise from dumpsys."""
        try:
            state = await self._get_tools(serial).get_state()
            package = state[3].get("packageName") if state and len(state) > 3 else None
            if package:
                return package
        except Exception as e:
            logger.debug(f"DroidRun get_state unavailable on {serial}: {e}")

        try:
            return parse_current_app(await self._adb_shell(["dumpsys", "window"], serial))
        except DeviceControllerError as e:
            logger.warning(f"Could not read the foreground app on {serial}: {e}")
            return "unknown"

    async def capture_snapshot(self, device_id: Optional[str] = None, model_name: str = "") -> ScreenSnapshot:
        serial = await self.resolve_serial(device_id)
        png_bytes = await self._capture_png(serial)
        current_app = await self.get_current_app(serial)

        try:
            with Image.open(io.BytesIO(png_bytes)) as image:
                width, height = image.size
            scaled = scale_screenshot(png_bytes, model_name)
        except OSError as e:
            raise DeviceControllerError(f"Screenshot from {serial} is not a readable image: {e}") from e

        return ScreenSnapshot(
            device_id=serial,
            current_app=current_app,
            width=width,
            height=height,
            image_bytes=scaled.data,
            scaled_width=scaled.width,
            scaled_height=scaled.height,
            scale_x=scaled.scale_x,
            scale_y=scaled.scale_y,
        )

    async def dump_ui_hierarchy(self, device_id: Optional[str] = None) -> str:
        serial = await self.resolve_serial(device_id)
        output = await self._adb(["exec-out", "uiautomator", "dump", "/dev/tty"], serial)
        return output.decode("utf-8", errors="replace")

    # =====================================================================
    # ACTIONS
    # =====================================================================

    async def execute(self, action: AgentAction, device_id: Optional[str] = None) -> str:
        """
        Run one normalized action and return a short human-readable result line.
        run_script and request_human_auth are handled by the runtime, never by the device.
        """
        serial = await self.resolve_serial(device_id)

        if isinstance(action, TapAction):
            x, y = round(action.x), round(action.y)
            await self._adb_shell(["input", "tap", str(x), str(y)], serial)
            return f"tapped ({x}, {y})"

        if isinstance(action, SwipeAction):
            duration = max(100, int(action.duration_ms))
            start_x, start_y, end_x, end_y = (round(v) for v in (action.x1, action.y1, action.x2, action.y2))
            await self._get_tools(serial).swipe(start_x, start_y, end_x, end_y, duration)
            return f"swiped ({start_x}, {start_y}) -> ({end_x}, {end_y}) in {duration}ms"

        if isinstance(action, TypeAction):
            if action.text.isascii():
                await self._adb_shell(["input", "text", encode_adb_text(action.text)], serial)
            else:
                # adb `input text` cannot carry non-ASCII, the Portal keyboard can
                await self._get_tools(serial).input_text(action.text)
            return f"typed {len(action.text)} characters"

        if isinstance(action, KeyEventAction):
            await self._adb_shell(["input", "keyevent", action.keycode], serial)
            return f"key event {action.keycode}"

        if isinstance(action, LaunchAppAction):
            result = await self._get_tools(serial).start_app(action.package_name)
            return f"launched {action.package_name}: {result}"

        if isinstance(action, ShellAction):
            try:
                args = shlex.split(action.command)
            except ValueError as e:
                raise DeviceControllerError(f"Invalid shell command: {e}") from e
            if not args:
                raise DeviceControllerError("Shell command is empty.")
            output = await self._adb_shell(args, serial)
            return f"shell output: {output}" if output else "shell command completed"

        if isinstance(action, WaitAction):
            duration = max(100, int(action.duration_ms))
            await asyncio.sleep(duration / 1000)
            return f"waited {duration}ms"

        if isinstance(action, FinishAction):
            return f"Finish: {action.message}"

        if isinstance(action, (RunScriptAction, RequestHumanAuthAction)):
            return f"{action.type} is not executed by the device controller"

        raise DeviceControllerError(f"Unsupported action: {action!r}")

    # =====================================================================
    # DELEGATION HELPERS
    # =====================================================================

    async def set_geo_location(self, latitude: float, longitude: float, device_id: Optional[str] = None) -> str:
        """Only emulators accept `emu geo fix`; note the longitude-first argument order."""
        serial = await self.resolve_serial(device_id)
        await self._adb(["emu", "geo", "fix", str(longitude), str(latitude)], serial)
        return f"geo fix set to lat={latitude} lon={longitude}"

    async def push_file(self, local_path: str, device_id: Optional[str] = None) -> str:
        serial = await self.resolve_serial(device_id)
        source = Path(local_path)
        if not source.is_file():
            raise DeviceControllerError(f"File to push does not exist: {local_path}")

        remote_path = f"{REMOTE_MEDIA_DIR}/{source.name}"
        await self._adb(["push", str(source), remote_path], serial)
        # make the file visible to gallery/photo pickers
        await self._adb_shell(
            ["am", "broadcast", "-a", "android.intent.action.MEDIA_SCANNER_SCAN_FILE", "-d", f"file://{remote_path}"],
            serial,
        )
        return remote_path
