# operator command interface for pending human authorization requests
#   help | pending | approve <id> [note] | reject <id> [note] | <bare code>

from pydantic import BaseModel

from pocket_pilot.agent_service.common.types.actions import CODE_CAPABILITIES
from pocket_pilot.human_auth.bridge import HumanAuthBridge
from pocket_pilot.human_auth.delegation import extract_code
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.human_auth.types import HumanAuthArtifact, HumanAuthOpenContext

HELP_TEXT = "\n".join([
    "Human auth commands:",
    "  pending                    list pending requests",
    "  approve <request_id> [note]  approve a request",
    "  reject <request_id> [note]   reject a request",
    "  <code>                     reply with a code (e.g. 493021) to approve the single pending SMS/2FA/QR/voice request",
])

class OperatorCommandResult(BaseModel):
    handled: bool
    message: str

def _format_pending(bridge: HumanAuthBridge) -> str:
    pending = bridge.list_pending()
    if not pending:
        return "No pending human auth requests."
    lines = [f"{len(pending)} pending:"]
    for item in pending:
        lines.append(
            f"- {item.request_id} capability={item.capability.value} app={item.current_app} "
            f"expires={item.expires_at.isoformat()} relay={'on' if item.relay_enabled else 'off'}"
        )
    return "\n".join(lines)

def handle_operator_command(bridge: HumanAuthBridge, command: str) -> OperatorCommandResult:
    text = command.strip()
    # chat-style prefix, e.g. "/auth approve auth-1"
    if text.lower().startswith("/auth"):
        text = text[len("/auth"):].strip()

    parts = text.split(maxsplit=2)
    if not parts or parts[0].lower() == "help":
        return OperatorCommandResult(handled=True, message=HELP_TEXT)

    verb = parts[0].lower()
    if verb == "pending":
        return OperatorCommandResult(handled=True, message=_format_pending(bridge))

    if verb in ("approve", "reject"):
        if len(parts) < 2:
            return OperatorCommandResult(handled=False, message=f"Usage: {verb} <request_id> [note]")
        request_id = parts[1]
        note = parts[2] if len(parts) > 2 else None
        approved = verb == "approve"
        if not bridge.resolve_pending(request_id, approved, note, actor="operator"):
            return OperatorCommandResult(
                handled=False,
                message=f"No pending request '{request_id}' (unknown or already resolved).",
            )
        return OperatorCommandResult(
            handled=True,
            message=f"Request {request_id} {'approved' if approved else 'rejected'}.",
        )

    code = extract_code(text)
    if code is not None:
        code_requests = [item for item in bridge.list_pending() if item.capability in CODE_CAPABILITIES]
        if not code_requests:
            return OperatorCommandResult(handled=False, message="No pending code request to apply this code to.")
        if len(code_requests) > 1:
            ids = ", ".join(item.request_id for item in code_requests)
            return OperatorCommandResult(
                handled=False,
                message=f"Several code requests are pending ({ids}). Use: approve <request_id> <code>",
            )
        request_id = code_requests[0].request_id
        bridge.resolve_pending(
            request_id,
            True,
            note="Code provided by operator.",
            actor="operator",
            artifact=HumanAuthArtifact(kind="text", text=code),
        )
        return OperatorCommandResult(handled=True, message=f"Code sent for request {request_id}.")

    return OperatorCommandResult(handled=False, message=f"Unknown command '{parts[0]}'.\n{HELP_TEXT}")

async def log_opened_request(context: HumanAuthOpenContext) -> None:
    """Default opened-notifier: tell the operator, through the log, how to act on a new request."""
    lines = [
        f"[human-auth] request {context.request_id} needs a decision ({context.capability.value})",
        f"  instruction: {context.instruction}",
        f"  expires: {context.expires_at.isoformat()}",
    ]
    if context.open_url:
        lines.append(f"  open: {context.open_url}")
    lines.append(f"  or reply: {context.manual_approve_command} | {context.manual_reject_command}")
    logger.info("\n".join(lines))
