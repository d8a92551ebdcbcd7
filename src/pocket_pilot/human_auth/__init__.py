# human authorization: request/decision types, the bridge, relay pieces and the permission dialog resolver

from pocket_pilot.human_auth.types import (
    HumanAuthArtifact,
    HumanAuthChannel,
    HumanAuthChannelError,
    HumanAuthDecision,
    HumanAuthRequest,
)
from pocket_pilot.human_auth.bridge import HumanAuthBridge

__all__ = [
    "HumanAuthArtifact",
    "HumanAuthChannel",
    "HumanAuthChannelError",
    "HumanAuthDecision",
    "HumanAuthRequest",
    "HumanAuthBridge",
]
