"""Image format sniffing and normalization.

``normalize_image`` is the last stage of every request. It never raises: when
decoding, resizing or encoding fails the original bytes are returned as they
are, with the format guessed from magic numbers and 0x0 dimensions.
"""

from __future__ import annotations

import io
import logging
import re
from typing import Callable, Dict, Optional, Tuple

from bs4 import BeautifulSoup
from PIL import Image, ImageOps

from .models import NormalizedImage

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "ico": "image/x-icon",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "avif": "image/avif",
}

# prolog, comments and doctype may precede the root element, nothing else
SVG_ROOT_PATTERN = re.compile(
    rb"(?:\s*(?:<\?xml[^>]*\?>|<!--.*?-->|<!doctype[^>]*>))*\s*<svg[\s/>]",
    re.IGNORECASE | re.DOTALL,
)
DIMENSION_PATTERN = re.compile(r"^\s*([0-9]*\.?[0-9]+)\s*(px)?\s*$", re.IGNORECASE)


def is_svg(data: bytes) -> bool:
    """True when the payload looks like SVG markup rather than an HTML page."""
    head = data[:1024].lstrip(b"\xef\xbb\xbf")
    return SVG_ROOT_PATTERN.match(head) is not None


def sniff_format(data: bytes) -> Optional[str]:
    """Identify an image by its container signature; None when unrecognised."""
    if len(data) >= 8 and data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "gif"
    if data.startswith((b"\x00\x00\x01\x00", b"\x00\x00\x02\x00")):
        return "ico"
    if len(data) >= 12 and data[0:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp"
    if data.startswith(b"BM") and len(data) >= 26:
        return "bmp"
    if len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in (b"avif", b"avis"):
        return "avif"
    if is_svg(data):
        return "svg"
    return None


def is_image(data: bytes) -> bool:
    return bool(data) and sniff_format(data) is not None


def detect_format(data: bytes) -> str:
    """Best-effort format name, PNG when nothing matches."""
    return sniff_format(data) or "png"


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt.lower(), "image/png")


# --- vector -----------------------------------------------------------------

def _svg_length(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    m = DIMENSION_PATTERN.match(value)
    if not m:
        return None  # percentages, em, etc. carry no pixel size
    number = round(float(m.group(1)))
    return number if number > 0 else None


def svg_dimensions(data: bytes) -> Tuple[int, int]:
    """Native size of an SVG from width/height, else viewBox, else (0, 0)."""
    try:
        soup = BeautifulSoup(data.decode("utf-8", errors="ignore"), "html.parser")
    except Exception:  # pylint: disable=broad-except
        return 0, 0
    root = soup.find("svg")
    if root is None:
        return 0, 0
    width = _svg_length(root.get("width"))
    height = _svg_length(root.get("height"))
    if width and height:
        return width, height
    view_box = root.get("viewbox")
    if view_box:
        parts = re.split(r"[\s,]+", view_box.strip())
        if len(parts) == 4:
            try:
                vb_width, vb_height = float(parts[2]), float(parts[3])
            except ValueError:
                return 0, 0
            if vb_width > 0 and vb_height > 0:
                return round(vb_width), round(vb_height)
    return 0, 0


def _rasterize_svg(data: bytes, size: Optional[int]) -> Image.Image:
    # cairosvg needs the native cairo library; import on demand so a missing
    # library only affects SVG-to-raster conversions.
    import cairosvg

    kwargs = {"output_width": size, "output_height": size} if size else {}
    png = cairosvg.svg2png(bytestring=data, **kwargs)
    return _open_raster(png)


# --- raster -----------------------------------------------------------------

def _open_raster(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


def largest_ico_frame(data: bytes) -> Image.Image:
    """Decode every frame of an ICO and return the one with the largest area."""
    img = Image.open(io.BytesIO(data))
    sizes = img.ico.sizes()
    if not sizes:
        raise ValueError("ICO container has no frames")
    best = max(sizes, key=lambda s: s[0] * s[1])
    frame = img.ico.getimage(best)
    frame.load()
    return frame


def fit_square(img: Image.Image, size: int) -> Image.Image:
    """Scale to fit inside size x size and pad the rest with transparency."""
    img = img.convert("RGBA")
    fitted = ImageOps.contain(img, (size, size), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    canvas.paste(fitted, ((size - fitted.width) // 2, (size - fitted.height) // 2))
    return canvas


def _encode_png(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
        img = img.convert("RGBA")
    img.save(buf, format="PNG", optimize=True)
    return buf.getvalue()


def _encode_jpeg(img: Image.Image) -> bytes:
    if img.mode != "RGB":
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        img = background
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=85, optimize=True)
    return buf.getvalue()


def _encode_webp(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    img.save(buf, format="WEBP", quality=90)
    return buf.getvalue()


def _encode_gif(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="GIF")
    return buf.getvalue()


Encoder = Callable[[Image.Image], bytes]

# Formats that can be written. Anything else (ico, bmp, svg, avif) goes out as PNG.
ENCODERS: Dict[str, Encoder] = {
    "png": _encode_png,
    "jpg": _encode_jpeg,
    "webp": _encode_webp,
    "gif": _encode_gif,
}


def resolve_encoder(fmt: str) -> Tuple[str, Encoder]:
    if fmt in ENCODERS:
        return fmt, ENCODERS[fmt]
    return "png", ENCODERS["png"]


def _describe(data: bytes) -> Tuple[str, int, int]:
    img = _open_raster(data)
    return detect_format(data), img.width, img.height


# --- entry point --------------------------------------------------------------

def normalize_image(data: bytes, size: Optional[int] = None,
                    fmt: Optional[str] = None) -> NormalizedImage:
    """Resize and/or transcode ``data`` to the requested size and format.

    SVG without a requested format is passed through untouched. ICO input is
    reduced to its largest frame first. The returned object always describes
    the bytes actually produced.
    """
    source_format = sniff_format(data)
    try:
        if source_format == "svg" and fmt is None:
            if size:
                return NormalizedImage(data=data, format="svg", width=size, height=size)
            width, height = svg_dimensions(data)
            return NormalizedImage(data=data, format="svg", width=width, height=height)

        if source_format == "svg":
            img = _rasterize_svg(data, size)
        elif source_format == "ico":
            img = largest_ico_frame(data)
        else:
            if size is None and fmt is None:
                # nothing requested: keep the original encoding
                detected, width, height = _describe(data)
                return NormalizedImage(data=data, format=detected, width=width, height=height)
            img = _open_raster(data)

        if size:
            img = fit_square(img, size)

        target, encode = resolve_encoder(fmt or source_format or "png")
        output = encode(img)
        return NormalizedImage(data=output, format=target, width=img.width, height=img.height)
    except Exception as exc:  # pylint: disable=broad-except
        logger.warning("Image normalization failed (%s), serving original bytes", exc)
        return NormalizedImage(data=data, format=detect_format(data), width=0, height=0)
