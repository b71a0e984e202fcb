import io

import pytest
from PIL import Image

from conftest import SVG_ICON, ico_bytes, png_bytes
from favicons.image_utils import (
    content_type_for,
    detect_format,
    is_image,
    normalize_image,
    resolve_encoder,
    sniff_format,
    svg_dimensions,
)


def _open(data):
    return Image.open(io.BytesIO(data))


@pytest.mark.parametrize("data,expected", [
    (b"\x89PNG\r\n\x1a\n" + b"\0" * 8, "png"),
    (b"\xff\xd8\xff\xe0rest", "jpg"),
    (b"GIF89a....", "gif"),
    (b"\x00\x00\x01\x00\x01\x00", "ico"),
    (b"RIFF\x10\x00\x00\x00WEBPVP8 ", "webp"),
    (b"\x00\x00\x00\x1cftypavif\x00\x00", "avif"),
    (b'<?xml version="1.0"?>\n<svg xmlns="http://www.w3.org/2000/svg"/>', "svg"),
    (b"  <svg></svg>", "svg"),
    (b"<!-- logo -->\n<!DOCTYPE svg PUBLIC \"-//W3C//DTD SVG 1.1//EN\">\n<svg/>", "svg"),
])
def test_sniff_format(data, expected):
    assert sniff_format(data) == expected


@pytest.mark.parametrize("data", [
    b"",
    b"hello",
    b"<!DOCTYPE html><html><svg></svg></html>",
    b"<!-- soft 404 --><html><body><svg viewBox=\"0 0 8 8\"></svg>Not found</body></html>",
    b"<?xml version=\"1.0\"?><rss><svg/></rss>",
    b"RIFF\0\0\0\0WAVE",
])
def test_sniff_rejects_non_images(data):
    assert sniff_format(data) is None
    assert not is_image(data)


def test_detect_format_defaults_to_png():
    assert detect_format(b"???") == "png"


def test_content_types():
    assert content_type_for("svg") == "image/svg+xml"
    assert content_type_for("jpg") == "image/jpeg"
    assert content_type_for("unknown") == "image/png"


def test_svg_dimensions():
    assert svg_dimensions(SVG_ICON) == (48, 48)
    assert svg_dimensions(b'<svg width="24px" height="16px"></svg>') == (24, 16)
    assert svg_dimensions(b'<svg width="100%" viewBox="0 0 120 60"></svg>') == (120, 60)
    assert svg_dimensions(b'<svg xmlns="http://www.w3.org/2000/svg"></svg>') == (0, 0)


def test_vector_passthrough_is_byte_identical():
    result = normalize_image(SVG_ICON)
    assert result.data == SVG_ICON
    assert (result.format, result.width, result.height) == ("svg", 48, 48)


def test_vector_passthrough_reports_requested_size():
    result = normalize_image(SVG_ICON, size=128)
    assert result.data == SVG_ICON
    assert (result.width, result.height) == (128, 128)


def test_vector_without_dimensions_reports_zero():
    svg = b'<svg xmlns="http://www.w3.org/2000/svg"><rect/></svg>'
    result = normalize_image(svg)
    assert (result.width, result.height) == (0, 0)
    assert result.byte_size == len(svg)


def test_ico_uses_largest_frame():
    result = normalize_image(ico_bytes())
    assert result.format == "png"
    assert (result.width, result.height) == (48, 48)
    assert _open(result.data).size == (48, 48)


def test_ico_requested_as_output_downgrades_to_png():
    assert resolve_encoder("ico")[0] == "png"
    assert resolve_encoder("webp")[0] == "webp"


def test_raster_without_options_keeps_original_bytes():
    data = png_bytes(40, 20)
    result = normalize_image(data)
    assert result.data == data
    assert (result.format, result.width, result.height) == ("png", 40, 20)


def test_resize_pads_to_transparent_square():
    result = normalize_image(png_bytes(64, 32), size=32)
    img = _open(result.data).convert("RGBA")
    assert result.format == "png"
    assert img.size == (32, 32)
    assert (result.width, result.height) == (32, 32)
    assert img.getpixel((0, 0))[3] == 0
    assert img.getpixel((16, 16))[3] == 255


def test_upscales_small_icons():
    result = normalize_image(png_bytes(16, 16), size=64)
    assert _open(result.data).size == (64, 64)


@pytest.mark.parametrize("fmt,pil_name", [("jpg", "JPEG"), ("webp", "WEBP"), ("png", "PNG")])
def test_transcode(fmt, pil_name):
    result = normalize_image(png_bytes(20, 20), size=24, fmt=fmt)
    assert result.format == fmt
    assert _open(result.data).format == pil_name
    assert result.byte_size == len(result.data)


def test_failure_returns_original_bytes():
    broken = b"\x89PNG\r\n\x1a\n" + b"truncated"
    result = normalize_image(broken, size=32, fmt="webp")
    assert result.data == broken
    assert (result.format, result.width, result.height) == ("png", 0, 0)


def test_unknown_bytes_never_raise():
    result = normalize_image(b"definitely not an image", size=64)
    assert result.data == b"definitely not an image"
    assert (result.width, result.height) == (0, 0)
