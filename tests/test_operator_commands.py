import asyncio

import pytest

from pocket_pilot.agent_service.common.types.actions import HumanAuthCapability
from pocket_pilot.human_auth.bridge import HumanAuthBridge
from pocket_pilot.human_auth.commands import HELP_TEXT, handle_operator_command
from pocket_pilot.human_auth.types import HumanAuthRequest


async def parked_sleep(seconds):
    # the deadline never fires, requests only settle through commands
    await asyncio.Event().wait()


def pending_ids(bridge):
    return [summary.request_id for summary in bridge.list_pending()]


async def open_request(bridge, capability, request_id):
    request = HumanAuthRequest(request_id=request_id, task="log in", step=1, capability=capability, instruction="help")
    waiter = asyncio.create_task(bridge.request(request))
    for _ in range(10):
        if request_id in pending_ids(bridge):
            break
        await asyncio.sleep(0)
    return waiter


@pytest.mark.asyncio
async def test_help_and_empty_command():
    bridge = HumanAuthBridge(sleep=parked_sleep)
    assert handle_operator_command(bridge, "help").message == HELP_TEXT
    assert handle_operator_command(bridge, "   ").message == HELP_TEXT


@pytest.mark.asyncio
async def test_pending_lists_requests():
    bridge = HumanAuthBridge(sleep=parked_sleep)
    assert handle_operator_command(bridge, "pending").message == "No pending human auth requests."

    waiter = await open_request(bridge, HumanAuthCapability.CAMERA, "auth-cam")
    listed = handle_operator_command(bridge, "/auth pending").message
    assert "1 pending:" in listed
    assert "auth-cam capability=camera" in listed
    assert "relay=off" in listed

    await bridge.shutdown()
    await waiter


@pytest.mark.asyncio
async def test_approve_with_note():
    bridge = HumanAuthBridge(sleep=parked_sleep)
    waiter = await open_request(bridge, HumanAuthCapability.BIOMETRIC, "auth-bio")

    result = handle_operator_command(bridge, "approve auth-bio face id done")
    decision = await waiter

    assert result.handled is True
    assert result.message == "Request auth-bio approved."
    assert decision.status == "approved"
    assert decision.message == "face id done"


@pytest.mark.asyncio
async def test_reject_unknown_request():
    bridge = HumanAuthBridge(sleep=parked_sleep)

    result = handle_operator_command(bridge, "reject auth-nope")

    assert result.handled is False
    assert "auth-nope" in result.message
    assert handle_operator_command(bridge, "approve").message == "Usage: approve <request_id> [note]"


@pytest.mark.asyncio
async def test_bare_code_goes_to_single_code_request():
    bridge = HumanAuthBridge(sleep=parked_sleep)
    camera = await open_request(bridge, HumanAuthCapability.CAMERA, "auth-cam")
    sms = await open_request(bridge, HumanAuthCapability.SMS, "auth-sms")

    result = handle_operator_command(bridge, "493 021")
    decision = await sms

    assert result.message == "Code sent for request auth-sms."
    assert decision.artifact.text == "493021"
    assert pending_ids(bridge) == ["auth-cam"]

    await bridge.shutdown()
    await camera


@pytest.mark.asyncio
async def test_bare_code_is_ambiguous_with_two_code_requests():
    bridge = HumanAuthBridge(sleep=parked_sleep)
    first = await open_request(bridge, HumanAuthCapability.SMS, "auth-a")
    second = await open_request(bridge, HumanAuthCapability.TWO_FA, "auth-b")

    result = handle_operator_command(bridge, "493021")

    assert result.handled is False
    assert "auth-a" in result.message and "auth-b" in result.message

    await bridge.shutdown()
    await asyncio.gather(first, second)


@pytest.mark.asyncio
async def test_code_without_code_request_and_unknown_command():
    bridge = HumanAuthBridge(sleep=parked_sleep)

    assert handle_operator_command(bridge, "493021").message == "No pending code request to apply this code to."
    unknown = handle_operator_command(bridge, "dance please")
    assert unknown.handled is False
    assert unknown.message.startswith("Unknown command 'dance'.")
