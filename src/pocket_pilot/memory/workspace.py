# workspace persistence: one markdown log per task session, one memory file per day

import re
import secrets
from datetime import datetime
from pathlib import Path
from pydantic import BaseModel

from pocket_pilot.common.logging.logger import logger

class SessionHandle(BaseModel):
    id: str
    path: Path

def _now_for_filename() -> str:
    return datetime.now().strftime("%Y%m%d-%H%M%S")

class WorkspaceStore:
    """
    Append-only session logs under sessions/ and daily summary lines under memory/.
    """
    def __init__(self, workspace_dir: Path):
        self.workspace_dir = Path(workspace_dir)
        self.sessions_dir = self.workspace_dir / "sessions"
        self.memory_dir = self.workspace_dir / "memory"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.memory_dir.mkdir(parents=True, exist_ok=True)

    def create_session(self, task: str, model_profile: str, model_name: str) -> SessionHandle:
        # suffix keeps two tasks started within the same second apart
        session_id = f"{_now_for_filename()}-{secrets.token_hex(3)}"
        path = self.sessions_dir / f"session-{session_id}.md"
        body = "\n".join([
            "# Pocket Pilot Session",
            "",
            f"- id: {session_id}",
            f"- started_at: {datetime.now().isoformat()}",
            f"- model_profile: {model_profile}",
            f"- model_name: {model_name}",
            "",
            "## Task",
            "",
            task,
            "",
            "## Steps",
            "",
        ])
        path.write_text(f"{body}\n", encoding="utf-8")
        return SessionHandle(id=session_id, path=path)

    def append_step(self, session: SessionHandle, step: int, thought: str, action_json: str, result: str) -> None:
        block = "\n".join([
            f"### Step {step}",
            "",
            f"- at: {datetime.now().isoformat()}",
            "- thought:",
            "```text",
            thought or "(empty)",
            "```",
            "- action:",
            "```json",
            action_json,
            "```",
            "- execution_result:",
            "```text",
            result,
            "```",
            "",
        ])
        with session.path.open("a", encoding="utf-8") as f:
            f.write(f"{block}\n")

    def finalize_session(self, session: SessionHandle, ok: bool, message: str) -> None:
        block = "\n".join([
            "## Final",
            "",
            f"- status: {'SUCCESS' if ok else 'FAILED'}",
            f"- ended_at: {datetime.now().isoformat()}",
            "",
            "### Message",
            "",
            message,
            "",
        ])
        with session.path.open("a", encoding="utf-8") as f:
            f.write(f"{block}\n")

    def append_daily_memory(self, model_profile: str, task: str, ok: bool, message: str) -> Path:
        """
        One line per finished task:
        - [HH:MM:SS] [OK|FAIL] [profile] task: <text> | result: <text>
        """
        now = datetime.now()
        path = self.memory_dir / f"{now.strftime('%Y-%m-%d')}.md"
        if not path.exists():
            path.write_text(f"# Memory {now.strftime('%Y-%m-%d')}\n\n", encoding="utf-8")

        compact = re.sub(r"\s+", " ", message.strip())[:400]
        line = (
            f"- [{now.strftime('%H:%M:%S')}] [{'OK' if ok else 'FAIL'}] [{model_profile}] "
            f"task: {task} | result: {compact}\n"
        )
        with path.open("a", encoding="utf-8") as f:
            f.write(line)
        logger.debug(f"[workspace] daily memory updated: {path}")
        return path
