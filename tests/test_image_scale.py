import io

from PIL import Image

from pocket_pilot.common.services.device_control.image_scale import (
    get_scale_target,
    scale_coordinates,
    scale_screenshot,
)


def png_bytes(width, height):
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), (20, 40, 60)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_scale_targets():
    assert get_scale_target("claude-sonnet") == ("long", 1568)
    assert get_scale_target("gpt-4o") == ("short", 768)
    assert get_scale_target("") == ("short", 768)


def test_short_side_scaling():
    scaled = scale_screenshot(png_bytes(1080, 2400), "gpt-4o")

    assert scaled.width == 768
    assert scaled.height == round(2400 * 768 / 1080)
    assert round(scaled.scale_x, 3) == round(1080 / 768, 3)
    with Image.open(io.BytesIO(scaled.data)) as image:
        assert image.size == (scaled.width, scaled.height)


def test_long_side_scaling_for_claude():
    scaled = scale_screenshot(png_bytes(1080, 2400), "claude-3-5-sonnet")
    assert scaled.height == 1568


def test_small_screens_are_untouched():
    data = png_bytes(600, 900)
    scaled = scale_screenshot(data, "gpt-4o")

    assert scaled.data == data
    assert (scaled.scale_x, scaled.scale_y) == (1.0, 1.0)


def test_coordinates_are_clamped():
    assert scale_coordinates(100, 200, 2.0, 2.0, 1080, 2400) == (200, 400)
    assert scale_coordinates(-5, 5000, 2.0, 2.0, 1080, 2400) == (0, 2399)
