# locate the button that enacts an approve/deny decision on a permission dialog
# NOTE: pure and stateless, operates on parsed nodes only so it can be tested without a device
#
# scoring:
# - text + content description against intent keywords (case/diacritics insensitive)
# - resource id against intent id keywords, weighted above plain text
# - best of the two, minus a penalty for nodes that are neither clickable nor buttons
# ties: approve prefers the right-most/bottom-most node, deny the left-most

import re
import unicodedata
from typing import Literal, Optional
from pydantic import BaseModel

from pocket_pilot.common.services.device_control.ui_hierarchy import PermissionDialogNode

PermissionIntent = Literal["approve", "deny"]

# bottom action row: nodes within this many pixels of the lowest top edge
BOTTOM_BAND_PX = 160
NON_BUTTON_PENALTY = 30
PARTIAL_MATCH_DISCOUNT = 10

APPROVE_ID_KEYWORDS: list[tuple[str, int]] = [
    ("permission_allow_button", 100),
    ("permission_allow_foreground_only_button", 100),
    ("permission_allow_always_button", 95),
    ("permission_allow_one_time_button", 90),
    ("permission_allow_all_button", 90),
    ("allow_button", 85),
    ("continue_button", 75),
    ("button1", 70),
    ("ok_button", 70),
]

DENY_ID_KEYWORDS: list[tuple[str, int]] = [
    ("permission_deny_button", 100),
    ("permission_deny_and_dont_ask_again_button", 95),
    ("permission_no_upgrade_button", 90),
    ("deny_button", 85),
    ("cancel_button", 75),
    ("button2", 70),
]

APPROVE_TEXT_KEYWORDS: list[tuple[str, int]] = [
    ("while using the app", 65),
    ("allow all the time", 62),
    ("allow", 60),
    ("permitir", 60),
    ("autoriser", 60),
    ("zulassen", 60),
    ("erlauben", 60),
    ("consenti", 60),
    ("允许", 60),
    ("仅在使用中允许", 60),
    ("only this time", 55),
    ("ok", 50),
    ("同意", 50),
    ("确定", 50),
    ("accept", 45),
    ("agree", 45),
    ("continue", 45),
    ("confirm", 45),
    ("grant", 45),
    ("yes", 40),
]

DENY_TEXT_KEYWORDS: list[tuple[str, int]] = [
    ("don't allow", 65),
    ("do not allow", 65),
    ("no permitir", 65),
    ("nicht zulassen", 65),
    ("ne pas autoriser", 65),
    ("不允许", 65),
    ("deny", 60),
    ("refuser", 60),
    ("拒绝", 60),
    ("禁止", 55),
    ("not now", 50),
    ("no thanks", 50),
    ("cancel", 50),
    ("取消", 50),
    ("decline", 45),
    ("reject", 45),
    ("no", 40),
]

# any of these in a label disqualifies it as an approve button ("Don't allow" contains "allow")
NEGATION_MARKERS = [
    "don't", "dont", "do not", "not ", "never", "deny", "no permitir",
    "nicht", "ne pas", "refuser", "不允许", "拒绝", "禁止",
]

class PermissionDialogResolution(BaseModel):
    found: bool
    intent: PermissionIntent
    x: Optional[int] = None
    y: Optional[int] = None
    score: int = 0
    node: Optional[PermissionDialogNode] = None
    detail: str = ""

def normalize_label(value: str) -> str:
    """Lower-case, strip diacritics, unify apostrophes, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.replace("’", "'").replace("‘", "'")
    return re.sub(r"\s+", " ", stripped).strip().casefold()

def _keyword_in(keyword: str, label: str) -> bool:
    if keyword.isascii():
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", label) is not None
    # CJK labels have no word boundaries
    return keyword in label

def _keyword_score(label: str, keywords: list[tuple[str, int]]) -> int:
    if not label:
        return 0
    best = 0
    for keyword, weight in keywords:
        if label == keyword:
            best = max(best, weight)
        elif _keyword_in(keyword, label):
            best = max(best, weight - PARTIAL_MATCH_DISCOUNT)
    return best

def _id_score(resource_id: str, keywords: list[tuple[str, int]]) -> int:
    if not resource_id:
        return 0
    lowered = resource_id.lower()
    # "com.android.permissioncontroller:id/permission_allow_button" -> "permission_allow_button"
    name = lowered.split("id/", 1)[1] if "id/" in lowered else lowered
    best = 0
    for keyword, weight in keywords:
        if name == keyword:
            best = max(best, weight + 10)
        elif keyword in name:
            best = max(best, weight)
    return best

def _is_actionable(node: PermissionDialogNode) -> bool:
    return node.clickable or "button" in node.class_name.lower()

def score_node(node: PermissionDialogNode, intent: PermissionIntent) -> int:
    if not node.enabled:
        return 0

    label = normalize_label(f"{node.text} {node.content_desc}")
    if intent == "approve":
        negated = any(marker in f"{label} " for marker in NEGATION_MARKERS)
        text_score = 0 if negated else _keyword_score(label, APPROVE_TEXT_KEYWORDS)
        id_score = _id_score(node.resource_id, APPROVE_ID_KEYWORDS)
        # e.g. a deny button whose id happens to contain "button1"-like fragments
        if id_score and _id_score(node.resource_id, DENY_ID_KEYWORDS) > id_score:
            id_score = 0
    else:
        text_score = _keyword_score(label, DENY_TEXT_KEYWORDS)
        id_score = _id_score(node.resource_id, DENY_ID_KEYWORDS)
        if id_score and _id_score(node.resource_id, APPROVE_ID_KEYWORDS) > id_score:
            id_score = 0

    score = max(text_score, id_score)
    if score > 0 and not _is_actionable(node):
        score -= NON_BUTTON_PENALTY
    return score

def _direction_key(intent: PermissionIntent, node: PermissionDialogNode, index: int) -> tuple:
    cx, cy = node.center
    if intent == "approve":
        return (-cx, -cy, index)
    return (cx, -cy, index)

def select_permission_dialog_node(
    nodes: list[PermissionDialogNode],
    intent: PermissionIntent,
) -> tuple[Optional[PermissionDialogNode], int, str]:
    """
    Returns (node, score, how it was chosen). node is None when nothing is actionable.
    """
    scored = [
        (score_node(node, intent), index, node)
        for index, node in enumerate(nodes)
    ]
    positive = [entry for entry in scored if entry[0] > 0]
    if positive:
        positive.sort(key=lambda entry: (-entry[0],) + _direction_key(intent, entry[2], entry[1]))
        score, _, node = positive[0]
        return (node, score, "keyword")

    # nothing matched, fall back to the bottom action row
    candidates = [
        (index, node) for index, node in enumerate(nodes)
        if node.enabled and _is_actionable(node)
    ]
    if not candidates:
        return (None, 0, "no actionable button detected")

    max_top = max(node.top for _, node in candidates)
    band = [(index, node) for index, node in candidates if max_top - node.top <= BOTTOM_BAND_PX]
    band.sort(key=lambda entry: _direction_key(intent, entry[1], entry[0]))
    return (band[0][1], 0, "bottom-row fallback")

def resolve_permission_dialog_tap(
    nodes: list[PermissionDialogNode],
    intent: PermissionIntent,
) -> PermissionDialogResolution:
    """
    Pick the tap target for an approve/deny decision. Never raises.
    """
    node, score, detail = select_permission_dialog_node(nodes, intent)
    if node is None:
        return PermissionDialogResolution(found=False, intent=intent, detail=detail)
    x, y = node.center
    return PermissionDialogResolution(
        found=True,
        intent=intent,
        x=x,
        y=y,
        score=score,
        node=node,
        detail=detail,
    )
