import re
from typing import Mapping, Optional
from urllib.parse import urlparse

from .errors import BlockedAddress, InvalidInput
from .models import FaviconOptions

INVALID_URL_MESSAGE = "Invalid URL or access to private IPs not allowed"
SIZE_MESSAGE = "Size must be between 16 and 512 pixels"
MIN_SIZE, MAX_SIZE = 16, 512
RESPONSE_TYPES = {"image", "json"}
OUTPUT_FORMATS = {"png", "jpg", "webp"}

SCHEME_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]*://")
MERGED_SCHEME_PATTERN = re.compile(r"^(https?):/+(?=[^/])", re.IGNORECASE)

LOOPBACK_NAMES = {"localhost", "0.0.0.0", "::", "::1"}
PRIVATE_PATTERNS = [
    re.compile(r"^127\."),
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[01])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^f[cd][0-9a-f]{2}:"),   # IPv6 unique local, fc00::/7
    re.compile(r"^fe[89ab][0-9a-f]:"),   # IPv6 link local, fe80::/10
]


def repair_path_url(raw: str) -> str:
    """Restore ``https:/host`` (slashes merged by the router) to ``https://host``."""
    return MERGED_SCHEME_PATTERN.sub(lambda m: m.group(1) + "://", raw.strip(), count=1)


def is_private_host(hostname: str) -> bool:
    host = hostname.lower().strip("[]").rstrip(".")
    if host in LOOPBACK_NAMES or host.endswith(".localhost"):
        return True
    return any(p.match(host) for p in PRIVATE_PATTERNS)


def validate_url(raw: Optional[str], block_private_ips: bool) -> str:
    """Normalize a user supplied domain or URL into an absolute http(s) URL.

    Raises InvalidInput for anything unusable and BlockedAddress when the
    literal host is private and blocking is on. Both carry the same message
    for a malformed or blocked URL. The check is purely syntactic; no DNS
    lookup happens here.
    """
    if raw is None or not raw.strip():
        raise InvalidInput("URL is required")
    url = raw.strip()
    if not SCHEME_PATTERN.match(url):
        url = "https://" + url
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
        parsed.port  # raises ValueError on a malformed port
    except ValueError:
        raise InvalidInput(INVALID_URL_MESSAGE)
    if parsed.scheme.lower() not in ("http", "https"):
        raise InvalidInput(INVALID_URL_MESSAGE)
    if not hostname:
        raise InvalidInput(INVALID_URL_MESSAGE)
    if any(c.isspace() for c in url):
        raise InvalidInput(INVALID_URL_MESSAGE)
    if block_private_ips and is_private_host(hostname):
        raise BlockedAddress(INVALID_URL_MESSAGE)
    return url


def origin_of(url: str) -> str:
    """scheme://host[:port] of an absolute URL, without credentials or path."""
    p = urlparse(url)
    host = p.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    if p.port:
        host = f"{host}:{p.port}"
    return f"{p.scheme or 'https'}://{host}"


def parse_size(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if not re.fullmatch(r"\d+", raw.strip()):
        raise InvalidInput(SIZE_MESSAGE)
    size = int(raw)
    if size < MIN_SIZE or size > MAX_SIZE:
        raise InvalidInput(SIZE_MESSAGE)
    return size


def parse_options(args: Mapping[str, str], block_private_ips: bool) -> FaviconOptions:
    """Validate the ``response``, ``size``, ``format`` and ``default`` query parameters."""
    response = (args.get("response") or "image").lower()
    if response not in RESPONSE_TYPES:
        raise InvalidInput("Response must be one of: image, json")

    fmt = args.get("format")
    if fmt:
        fmt = fmt.lower()
        if fmt not in OUTPUT_FORMATS:
            raise InvalidInput("Format must be one of: png, jpg, webp")
    else:
        fmt = None

    default_url = args.get("default")
    if default_url:
        if not SCHEME_PATTERN.match(default_url.strip()):
            raise InvalidInput("Default image must be a valid URL")
        try:
            default_url = validate_url(default_url, block_private_ips)
        except InvalidInput:
            raise InvalidInput("Default image must be a valid URL")
    else:
        default_url = None

    return FaviconOptions(
        response=response,
        size=parse_size(args.get("size")),
        format=fmt,
        default_url=default_url,
    )
