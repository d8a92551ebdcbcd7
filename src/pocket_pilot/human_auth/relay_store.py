# record store behind the human auth web relay
# NOTE: raw tokens are never stored, only their sha256; the open token is cleared once consumed

import hashlib
import hmac
import json
import math
import secrets
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional
from pydantic import BaseModel, ValidationError

from pocket_pilot.api.request_models.human_auth import RelayArtifactPayload, RelayCreateRequest
from pocket_pilot.api.response_models.human_auth import RelayStatus
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.human_auth.types import new_request_id, utc_now

MIN_RELAY_TIMEOUT_SEC = 30
MAX_RELAY_TIMEOUT_SEC = 1800
DEFAULT_RELAY_TIMEOUT_SEC = 300

class RelayStoreError(Exception):
    status_code = 400

class RelayRecordNotFound(RelayStoreError):
    status_code = 404

class RelayTokenInvalid(RelayStoreError):
    status_code = 403

class RelayRecordClosed(RelayStoreError):
    status_code = 409

class RelayRecord(BaseModel):
    request_id: str
    task: str = ""
    session_id: str = ""
    step: int = 0
    capability: str = "unknown"
    instruction: str = ""
    reason: str = ""
    current_app: str = "unknown"
    screenshot_path: Optional[str] = None
    created_at: datetime
    expires_at: datetime
    status: RelayStatus = "pending"
    note: str = ""
    decided_at: Optional[datetime] = None
    artifact: Optional[RelayArtifactPayload] = None
    open_token_hash: str = ""
    poll_token_hash: str = ""

def random_token(nbytes: int = 24) -> str:
    return secrets.token_urlsafe(nbytes)

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()

def token_matches(token: Optional[str], stored_hash: str) -> bool:
    if not token or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(token), stored_hash)

def clamp_relay_timeout(value: float) -> float:
    if not math.isfinite(value):
        return DEFAULT_RELAY_TIMEOUT_SEC
    return max(MIN_RELAY_TIMEOUT_SEC, min(MAX_RELAY_TIMEOUT_SEC, value))

class HumanAuthRelayStore:
    """
    In-memory relay records mirrored to a JSON state file so pending links survive a restart.
    """
    def __init__(self, state_file: Optional[Path] = None, now: Callable[[], datetime] = utc_now):
        self.state_file = state_file
        self._now = now
        self._records: dict[str, RelayRecord] = {}
        self._load_state()

    def __len__(self) -> int:
        return len(self._records)

    def _load_state(self) -> None:
        if self.state_file is None or not self.state_file.exists():
            return
        try:
            parsed = json.loads(self.state_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"[relay] ignoring unreadable state file {self.state_file}: {e}")
            return
        if not isinstance(parsed, list):
            return
        for item in parsed:
            try:
                record = RelayRecord.model_validate(item)
            except ValidationError:
                continue
            self._records[record.request_id] = record

    def _persist_state(self) -> None:
        if self.state_file is None:
            return
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        payload = [record.model_dump(mode="json") for record in self._records.values()]
        self.state_file.write_text(f"{json.dumps(payload, indent=2)}\n", encoding="utf-8")

    def _update_timeout_status(self, record: RelayRecord) -> None:
        if record.status != "pending":
            return
        if self._now() > record.expires_at:
            record.status = "timeout"
            record.note = record.note or "Request timed out."
            record.decided_at = self._now()
            self._persist_state()

    def create(self, body: RelayCreateRequest) -> tuple[RelayRecord, str, str]:
        """
        Store a new pending record. Returns (record, open_token, poll_token);
        the raw tokens are handed out once and only their hashes are kept.
        """
        if body.request_id and body.request_id in self._records:
            raise RelayRecordClosed(f"Request '{body.request_id}' already exists.")
        open_token = random_token()
        poll_token = random_token()
        created_at = self._now()
        timeout_sec = clamp_relay_timeout(body.timeout_sec)
        record = RelayRecord(
            request_id=body.request_id or new_request_id(),
            task=body.task,
            session_id=body.session_id,
            step=body.step,
            capability=body.capability,
            instruction=body.instruction,
            reason=body.reason,
            current_app=body.current_app,
            screenshot_path=body.screenshot_path,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=timeout_sec),
            open_token_hash=hash_token(open_token),
            poll_token_hash=hash_token(poll_token),
        )
        self._records[record.request_id] = record
        self._persist_state()
        return (record, open_token, poll_token)

    def get(self, request_id: str) -> RelayRecord:
        record = self._records.get(request_id)
        if record is None:
            raise RelayRecordNotFound("Request not found.")
        self._update_timeout_status(record)
        return record

    def poll(self, request_id: str, poll_token: Optional[str]) -> RelayRecord:
        record = self.get(request_id)
        if not token_matches(poll_token, record.poll_token_hash):
            raise RelayTokenInvalid("Invalid poll token.")
        return record

    def open_for_portal(self, request_id: str, open_token: Optional[str]) -> RelayRecord:
        record = self.get(request_id)
        if record.status != "pending":
            raise RelayRecordClosed(f"Request already {record.status}.")
        if not token_matches(open_token, record.open_token_hash):
            raise RelayTokenInvalid("Invalid or expired token.")
        return record

    def resolve(
        self,
        request_id: str,
        open_token: str,
        approved: bool,
        note: str = "",
        artifact: Optional[RelayArtifactPayload] = None,
    ) -> RelayRecord:
        """
        Consume the open token exactly once. A second attempt sees a closed record.
        """
        record = self.get(request_id)
        if record.status != "pending":
            raise RelayRecordClosed(f"Request already {record.status}.")
        if not token_matches(open_token, record.open_token_hash):
            raise RelayTokenInvalid("Invalid token.")

        record.status = "approved" if approved else "rejected"
        record.note = note[:2000]
        record.decided_at = self._now()
        record.open_token_hash = ""
        record.artifact = artifact
        self._persist_state()
        return record
