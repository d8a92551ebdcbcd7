# parse a uiautomator XML dump into flat control nodes
# NOTE: only structure is trusted here, no device access

import re
import xml.etree.ElementTree as ET
from typing import Optional
from pydantic import BaseModel

from pocket_pilot.common.logging.logger import logger

_BOUNDS_PATTERN = re.compile(r"\[(-?\d+),(-?\d+)\]\[(-?\d+),(-?\d+)\]")

class PermissionDialogNode(BaseModel):
    """
    An on-screen control. Bounds are (left, top, right, bottom) in device pixels.
    """
    text: str = ""
    content_desc: str = ""
    resource_id: str = ""
    class_name: str = ""
    clickable: bool = False
    enabled: bool = True
    left: int
    top: int
    right: int
    bottom: int

    @property
    def center(self) -> tuple[int, int]:
        return ((self.left + self.right) // 2, (self.top + self.bottom) // 2)

def parse_bounds(raw: str) -> Optional[tuple[int, int, int, int]]:
    """
    Parse "[l,t][r,b]". Returns None for anything malformed or degenerate.
    """
    match = _BOUNDS_PATTERN.fullmatch(raw.strip())
    if not match:
        return None
    left, top, right, bottom = (int(v) for v in match.groups())
    if right <= left or bottom <= top:
        return None
    return (left, top, right, bottom)

def parse_ui_hierarchy(xml_text: str) -> list[PermissionDialogNode]:
    """
    Flatten every <node> in the dump, in document order.
    Nodes with malformed bounds are dropped.
    """
    if not xml_text or not xml_text.strip():
        return []

    # `uiautomator dump /dev/tty` appends a status line after the XML
    start = xml_text.find("<")
    end = xml_text.rfind(">")
    if start < 0 or end < start:
        return []

    try:
        root = ET.fromstring(xml_text[start:end + 1])
    except ET.ParseError as e:
        logger.warning(f"Failed to parse UI hierarchy dump: {e}")
        return []

    nodes: list[PermissionDialogNode] = []
    for element in root.iter("node"):
        bounds = parse_bounds(element.get("bounds", ""))
        if bounds is None:
            continue
        left, top, right, bottom = bounds
        nodes.append(
            PermissionDialogNode(
                text=element.get("text", ""),
                content_desc=element.get("content-desc", ""),
                resource_id=element.get("resource-id", ""),
                class_name=element.get("class", ""),
                clickable=element.get("clickable", "false") == "true",
                enabled=element.get("enabled", "true") == "true",
                left=left,
                top=top,
                right=right,
                bottom=bottom,
            )
        )
    return nodes
