# screenshot scaling helpers
# models see a downscaled screen, taps/swipes are mapped back to device pixels

import io
from typing import Literal
from PIL import Image
from pydantic import BaseModel

class ScaledImage(BaseModel):
    data: bytes
    scale_x: float # multiply model coordinates by these to get device coordinates
    scale_y: float
    width: int
    height: int

def get_scale_target(model_name: str) -> tuple[Literal["short", "long"], int]:
    """
    Claude-family models: longest side to 1568px.
    Everything else (OpenAI-style): shortest side to 768px.
    """
    lower = model_name.lower()
    if "claude" in lower or "anthropic" in lower:
        return ("long", 1568)
    return ("short", 768)

def scale_screenshot(png_bytes: bytes, model_name: str = "") -> ScaledImage:
    with Image.open(io.BytesIO(png_bytes)) as image:
        orig_width, orig_height = image.size
        side, pixels = get_scale_target(model_name)
        reference = min(orig_width, orig_height) if side == "short" else max(orig_width, orig_height)

        # already small enough
        if reference <= pixels:
            return ScaledImage(data=png_bytes, scale_x=1.0, scale_y=1.0, width=orig_width, height=orig_height)

        ratio = pixels / reference
        new_width = max(1, round(orig_width * ratio))
        new_height = max(1, round(orig_height * ratio))
        resized = image.convert("RGB").resize((new_width, new_height), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    resized.save(buffer, format="PNG")
    return ScaledImage(
        data=buffer.getvalue(),
        scale_x=orig_width / new_width,
        scale_y=orig_height / new_height,
        width=new_width,
        height=new_height,
    )

def scale_coordinates(
    x: float,
    y: float,
    scale_x: float,
    scale_y: float,
    orig_width: int,
    orig_height: int,
) -> tuple[int, int]:
    """Map a point from model space to device space, clamped to the screen."""
    return (
        max(0, min(round(x * scale_x), orig_width - 1)),
        max(0, min(round(y * scale_y), orig_height - 1)),
    )
