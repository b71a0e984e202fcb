import json
import logging
import re
from typing import List, Optional
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from .config import FaviconConfig
from .errors import DeadlineExceeded, TransientFetchFailure
from .fetch_utils import Deadline, read_body
from .html_utils import fetch_html
from .models import Candidate, OriginKind, Outcome
from .rank_utils import rank_candidates, score_candidate
from .url_utils import origin_of

logger = logging.getLogger(__name__)

SIZE_PATTERN = re.compile(r"(\d+)x\d+", re.IGNORECASE)
DATA_MIME_PATTERN = re.compile(r"^data:([a-z0-9.+\-]+/[a-z0-9.+\-]+)", re.IGNORECASE)
WELL_KNOWN_PATHS = ("/favicon.ico", "/apple-touch-icon.png")
MANIFEST_PATH = "/manifest.json"

EXTENSION_TYPES = {
    ".svg": "image/svg+xml",
    ".png": "image/png",
    ".ico": "image/x-icon",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}


def parse_sizes(sizes: Optional[str]) -> Optional[int]:
    """First width of a ``WxH`` pair, e.g. "32x32 16x16" -> 32."""
    if not sizes:
        return None
    m = SIZE_PATTERN.search(sizes)
    return int(m.group(1)) if m else None


def infer_format_hint(href: str, declared_type: Optional[str] = None) -> Optional[str]:
    if declared_type and declared_type.strip():
        return declared_type.strip().lower()
    m = DATA_MIME_PATTERN.match(href)
    if m:
        return m.group(1).lower()
    if href.lower().startswith("data:"):
        return None
    path = urlparse(href).path.lower()
    for ext, mime in EXTENSION_TYPES.items():
        if path.endswith(ext):
            return mime
    return None


def resolve_icon_url(href: str, origin: str) -> str:
    """Absolute URL of an icon href relative to ``origin`` (scheme://host)."""
    href = href.strip()
    if href.lower().startswith(("data:", "http://", "https://")):
        return href
    if href.startswith("//"):
        return "https:" + href
    if href.startswith("/"):
        return origin + href
    return f"{origin}/{href}"


def _rel_text(link) -> str:
    rel = link.get("rel")
    if isinstance(rel, (list, tuple)):
        return " ".join(rel).lower()
    return (rel or "").lower()


def extract_link_candidates(soup: BeautifulSoup, origin: str) -> List[Candidate]:
    """Every <link> whose rel mentions "icon", in document order."""
    candidates = []
    for link in soup.find_all("link"):
        rel = _rel_text(link)
        href = link.get("href")
        if "icon" not in rel or not href or not href.strip():
            continue
        size = parse_sizes(link.get("sizes"))
        hint = infer_format_hint(href.strip(), link.get("type"))
        candidates.append(Candidate(
            url=resolve_icon_url(href, origin),
            origin_kind=OriginKind.MARKUP_LINK,
            rank_score=score_candidate(size, hint, rel, OriginKind.MARKUP_LINK),
            declared_size=size,
            declared_format_hint=hint,
            relation_text=rel,
        ))
    return candidates


def well_known_candidates(origin: str) -> List[Candidate]:
    return [
        Candidate(
            url=origin + path,
            origin_kind=OriginKind.WELL_KNOWN_PATH,
            rank_score=score_candidate(None, None, path, OriginKind.WELL_KNOWN_PATH),
            declared_format_hint=infer_format_hint(path),
            relation_text=path,
        )
        for path in WELL_KNOWN_PATHS
    ]


def find_manifest_url(soup: Optional[BeautifulSoup], origin: str) -> str:
    if soup is not None:
        link = soup.find("link", rel=lambda v: v and "manifest" in v.lower())
        if link and link.get("href") and not link["href"].lower().startswith("data:"):
            return resolve_icon_url(link["href"], origin)
    return origin + MANIFEST_PATH


def manifest_candidates(data: dict, manifest_url: str) -> List[Candidate]:
    icons = data.get("icons") if isinstance(data, dict) else None
    if not isinstance(icons, list):
        return []
    candidates = []
    for icon in icons:
        if not isinstance(icon, dict) or not isinstance(icon.get("src"), str) or not icon["src"].strip():
            continue
        src = icon["src"].strip()
        sizes = icon.get("sizes") if isinstance(icon.get("sizes"), str) else None
        declared_type = icon.get("type") if isinstance(icon.get("type"), str) else None
        purpose = icon.get("purpose") if isinstance(icon.get("purpose"), str) else ""
        size = parse_sizes(sizes)
        hint = infer_format_hint(src, declared_type)
        url = src if src.lower().startswith("data:") else urljoin(manifest_url, src)
        candidates.append(Candidate(
            url=url,
            origin_kind=OriginKind.MANIFEST_ENTRY,
            rank_score=score_candidate(size, hint, purpose.lower(), OriginKind.MANIFEST_ENTRY),
            declared_size=size,
            declared_format_hint=hint,
            relation_text=purpose.lower(),
        ))
    return candidates


def fetch_manifest(manifest_url: str, session: requests.Session, config: FaviconConfig,
                   deadline: Optional[Deadline] = None) -> Outcome[List[Candidate]]:
    """Icons listed in a web app manifest. A missing or broken manifest is not an error."""
    timeout = deadline.timeout(config.request_timeout) if deadline else config.request_timeout
    try:
        resp = session.get(manifest_url, headers={"User-Agent": config.user_agent},
                           timeout=timeout, stream=True)
    except requests.RequestException as exc:
        return Outcome.empty(f"request failed: {exc}")
    if resp.status_code >= 400:
        resp.close()
        return Outcome.empty(f"HTTP {resp.status_code}")
    try:
        body = read_body(resp, manifest_url, config.max_document_size, deadline)
    except DeadlineExceeded:
        raise
    except TransientFetchFailure as exc:
        return Outcome.empty(str(exc))
    try:
        data = json.loads(body)
    except ValueError:
        return Outcome.empty("not JSON")
    candidates = manifest_candidates(data, resp.url or manifest_url)
    if not candidates:
        return Outcome.empty("no icons")
    return Outcome.found(candidates)


def discover_candidates(target_url: str, session: requests.Session, config: FaviconConfig,
                        deadline: Optional[Deadline] = None) -> List[Candidate]:
    """All candidates for a page, ranked best first.

    Links are resolved against the origin the page was finally served from.
    When no HTML could be fetched the well-known paths and the manifest are
    still tried against the requested origin.
    """
    page = fetch_html(target_url, session, config, deadline)
    soup = None
    origin = origin_of(target_url)
    candidates: List[Candidate] = []
    if page.ok:
        origin = origin_of(page.value.final_url)
        soup = BeautifulSoup(page.value.html, "html.parser")
        candidates.extend(extract_link_candidates(soup, origin))

    candidates.extend(well_known_candidates(origin))

    manifest = fetch_manifest(find_manifest_url(soup, origin), session, config, deadline)
    if manifest.ok:
        candidates.extend(manifest.value)
    else:
        logger.debug("No manifest icons for %s: %s", origin, manifest.reason)

    ranked = rank_candidates(candidates)
    logger.debug("Found %d candidates for %s", len(ranked), target_url)
    return ranked
