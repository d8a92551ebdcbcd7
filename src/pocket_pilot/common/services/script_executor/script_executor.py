# guarded executor for the run_script action
# scripts are validated against an allowlist and deny patterns, then run with bash under a hard timeout
# every run leaves script.sh, stdout.log, stderr.log and result.json in its own directory

import asyncio
import json
import re
import secrets
import time
from datetime import datetime
from pathlib import Path
from typing import Optional
from pydantic import BaseModel

from pocket_pilot.common.logging.logger import logger

MAX_SCRIPT_CHARS = 12_000

DENY_PATTERNS = [
    re.compile(r"\bsudo\b", re.IGNORECASE),
    re.compile(r"\bshutdown\b", re.IGNORECASE),
    re.compile(r"\breboot\b", re.IGNORECASE),
    re.compile(r"\bpoweroff\b", re.IGNORECASE),
    re.compile(r"\bhalt\b", re.IGNORECASE),
    re.compile(r"\bmkfs\b", re.IGNORECASE),
    re.compile(r"\bdd\s+if=", re.IGNORECASE),
    re.compile(r"rm\s+-rf\s+/(\s|$)", re.IGNORECASE),
]

_SEGMENT_SPLIT = re.compile(r"&&|\|\||;|\|")
_ENV_ASSIGNMENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=.*")

class ScriptExecutionResult(BaseModel):
    ok: bool
    run_id: str
    run_dir: str
    script_path: str
    exit_code: Optional[int] = None
    timed_out: bool = False
    duration_ms: int = 0
    stdout: str = ""
    stderr: str = ""

    def summary(self) -> str:
        lines = [
            f"run_script exit_code={self.exit_code} timed_out={self.timed_out}",
            f"run_dir={self.run_dir}",
        ]
        if self.stdout:
            lines.append(f"stdout={self.stdout}")
        if self.stderr:
            lines.append(f"stderr={self.stderr}")
        return "\n".join(lines)

def truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return f"{text[:max_chars]}\n...[truncated]"

def extract_command_name(segment: str) -> str:
    tokens = segment.split()
    i = 0
    # skip leading VAR=value assignments
    while i < len(tokens) and _ENV_ASSIGNMENT.match(tokens[i]):
        i += 1
    return tokens[i] if i < len(tokens) else ""

class ScriptExecutor:
    def __init__(
        self,
        workspace_dir: Path,
        *,
        enabled: bool = True,
        timeout_sec: int = 60,
        max_output_chars: int = 6000,
        allowed_commands: Optional[list[str]] = None,
    ):
        self.scripts_dir = Path(workspace_dir) / "scripts"
        self.runs_dir = self.scripts_dir / "runs"
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self.enabled = enabled
        self.timeout_sec = timeout_sec
        self.max_output_chars = max_output_chars
        self.allowed_commands = set(allowed_commands or [])

    def validate_script(self, script: str) -> Optional[str]:
        """Returns a rejection reason, or None when the script may run."""
        if not self.enabled:
            return "Script executor is disabled by config."
        if not script.strip():
            return "Script is empty."
        if len(script) > MAX_SCRIPT_CHARS:
            return f"Script exceeds max length ({MAX_SCRIPT_CHARS} characters)."

        for deny in DENY_PATTERNS:
            if deny.search(script):
                return f"Script blocked by safety rule: {deny.pattern}"

        for raw_line in script.splitlines():
            line = raw_line.split("#", 1)[0].strip()
            if not line:
                continue
            for segment in _SEGMENT_SPLIT.split(line):
                command = extract_command_name(segment.strip())
                if command and command not in self.allowed_commands:
                    return f"Command '{command}' is not allowed by SCRIPT_EXECUTOR_ALLOWED_COMMANDS."
        return None

    def _write_result(self, run_dir: Path, result: ScriptExecutionResult) -> None:
        (run_dir / "stdout.log").write_text(f"{result.stdout}\n", encoding="utf-8")
        (run_dir / "stderr.log").write_text(f"{result.stderr}\n", encoding="utf-8")
        (run_dir / "result.json").write_text(f"{json.dumps(result.model_dump(), indent=2)}\n", encoding="utf-8")

    async def execute(self, script: str, timeout_sec: Optional[float] = None) -> ScriptExecutionResult:
        run_id = f"{datetime.now().strftime('%Y%m%d-%H%M%S')}-{secrets.token_hex(3)}"
        run_dir = self.runs_dir / f"run-{run_id}"
        run_dir.mkdir(parents=True, exist_ok=True)
        script_path = run_dir / "script.sh"
        script_path.write_text(f"{script.strip()}\n", encoding="utf-8")
        script_path.chmod(0o700)

        validation_error = self.validate_script(script)
        if validation_error:
            logger.info(f"[script] run {run_id} rejected: {validation_error}")
            result = ScriptExecutionResult(
                ok=False,
                run_id=run_id,
                run_dir=str(run_dir),
                script_path=str(script_path),
                stderr=validation_error,
            )
            self._write_result(run_dir, result)
            return result

        timeout = max(1.0, float(timeout_sec if timeout_sec is not None else self.timeout_sec))
        started = time.monotonic()
        timed_out = False
        try:
            proc = await asyncio.create_subprocess_exec(
                "bash",
                str(script_path),
                cwd=str(self.scripts_dir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            result = ScriptExecutionResult(
                ok=False,
                run_id=run_id,
                run_dir=str(run_dir),
                script_path=str(script_path),
                stderr=truncate(str(e), self.max_output_chars),
            )
            self._write_result(run_dir, result)
            return result

        try:
            stdout_raw, stderr_raw = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            timed_out = True
            proc.kill()
            stdout_raw, stderr_raw = await proc.communicate()

        result = ScriptExecutionResult(
            ok=not timed_out and proc.returncode == 0,
            run_id=run_id,
            run_dir=str(run_dir),
            script_path=str(script_path),
            exit_code=proc.returncode,
            timed_out=timed_out,
            duration_ms=int((time.monotonic() - started) * 1000),
            stdout=truncate(stdout_raw.decode("utf-8", errors="replace"), self.max_output_chars),
            stderr=truncate(stderr_raw.decode("utf-8", errors="replace"), self.max_output_chars),
        )
        self._write_result(run_dir, result)
        logger.info(f"[script] run {run_id} exit_code={result.exit_code} timed_out={timed_out}")
        return result
