"""Downloading icon candidates, strictly one at a time and in rank order."""

from __future__ import annotations

import base64
import binascii
import logging
import time
from typing import Iterable, Iterator, Optional
from urllib.parse import quote, unquote, unquote_to_bytes

import requests
import urllib3

from .config import FaviconConfig
from .errors import DeadlineExceeded, TransientFetchFailure
from .image_utils import sniff_format
from .models import Candidate, FetchedAsset, OriginKind
from .rank_utils import score_candidate

logger = logging.getLogger(__name__)

BODY_CHUNK_SIZE = 1024
REMOTE_FALLBACK_SIZE = 64


class Deadline:
    """Wall-clock budget shared by every network call of one request."""

    def __init__(self, seconds: float):
        self.seconds = seconds
        self.expires_at = time.monotonic() + seconds

    def remaining(self) -> float:
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    def check(self) -> None:
        if self.expired:
            raise DeadlineExceeded(f"request deadline of {self.seconds:.1f}s exceeded")

    def timeout(self, per_call: float) -> float:
        """Per-call timeout clipped to what is left of the budget."""
        self.check()
        return min(per_call, self.remaining())


def build_session(config: FaviconConfig) -> requests.Session:
    session = requests.Session()
    session.max_redirects = config.max_redirects
    session.headers.update({"User-Agent": config.user_agent})
    return session


def decode_data_url(url: str) -> bytes:
    """Payload of a ``data:`` URL, base64 or percent-encoded."""
    header, sep, payload = url.partition(",")
    if not sep or not header.lower().startswith("data:"):
        raise TransientFetchFailure("malformed data URL")
    if header.lower().endswith(";base64"):
        try:
            return base64.b64decode(unquote(payload), validate=False)
        except (binascii.Error, ValueError) as exc:
            raise TransientFetchFailure(f"bad base64 payload: {exc}")
    return unquote_to_bytes(payload)


def download_image(url: str, session: requests.Session, config: FaviconConfig,
                   deadline: Optional[Deadline] = None) -> bytes:
    """GET ``url`` and return the body if it is a plausible image.

    Raises TransientFetchFailure on transport errors, non-2xx status, empty or
    oversized bodies and bodies that do not sniff as an image.
    """
    if url.lower().startswith("data:"):
        data = decode_data_url(url)
    else:
        timeout = deadline.timeout(config.request_timeout) if deadline else config.request_timeout
        data = _read_capped(url, session, config, timeout, deadline)

    if not data:
        raise TransientFetchFailure(f"empty body from {url[:100]}")
    if len(data) > config.max_image_size:
        raise TransientFetchFailure(
            f"{url[:100]} is larger than {config.max_image_size} bytes"
        )
    if sniff_format(data) is None:
        raise TransientFetchFailure(f"{url[:100]} is not an image")
    return data


def iter_arrivals(resp, chunk_size: int = BODY_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield body bytes as they arrive rather than in full ``chunk_size`` blocks."""
    while True:
        chunk = resp.raw.read1(chunk_size, decode_content=True)
        if not chunk:
            return
        yield chunk


def read_body(resp, url: str, limit: int, deadline: Optional[Deadline] = None) -> bytes:
    """Read a streamed body up to ``limit`` bytes, checking the deadline as it arrives.

    The response is always closed. Raises TransientFetchFailure for oversized
    bodies and broken transfers, DeadlineExceeded when the budget runs out.
    """
    try:
        chunks = []
        total = 0
        for chunk in iter_arrivals(resp):
            if deadline is not None:
                deadline.check()
            total += len(chunk)
            if total > limit:
                raise TransientFetchFailure(f"{url[:100]} is larger than {limit} bytes")
            chunks.append(chunk)
        if deadline is not None:
            deadline.check()
        return b"".join(chunks)
    except (requests.RequestException, urllib3.exceptions.HTTPError, OSError) as exc:
        raise TransientFetchFailure(f"reading {url[:100]} failed: {exc}")
    finally:
        resp.close()


def _read_capped(url: str, session: requests.Session, config: FaviconConfig,
                 timeout: float, deadline: Optional[Deadline]) -> bytes:
    try:
        resp = session.get(
            url,
            headers={"User-Agent": config.user_agent},
            timeout=timeout,
            stream=True,
        )
    except requests.RequestException as exc:
        raise TransientFetchFailure(f"request to {url} failed: {exc}")
    if resp.status_code >= 400 or resp.status_code < 200:
        resp.close()
        raise TransientFetchFailure(f"{url} answered HTTP {resp.status_code}")
    return read_body(resp, url, config.max_image_size, deadline)


def fetch_candidate(candidate: Candidate, session: requests.Session,
                    config: FaviconConfig, deadline: Optional[Deadline] = None) -> FetchedAsset:
    data = download_image(candidate.url, session, config, deadline)
    return FetchedAsset(
        data=data,
        detected_format=sniff_format(data),
        origin_kind=candidate.origin_kind,
        origin_url=candidate.url,
    )


def iter_accepted_assets(candidates: Iterable[Candidate], session: requests.Session,
                         config: FaviconConfig,
                         deadline: Optional[Deadline] = None) -> Iterator[FetchedAsset]:
    """Lazily yield each candidate that downloads and validates, in order.

    A failing candidate is skipped without retry. DeadlineExceeded is not
    swallowed so the caller can stop the whole chain.
    """
    for candidate in candidates:
        if deadline is not None:
            deadline.check()
        try:
            asset = fetch_candidate(candidate, session, config, deadline)
        except DeadlineExceeded:
            raise
        except TransientFetchFailure as exc:
            logger.debug("Skipping candidate %s: %s", candidate.url[:100], exc)
            continue
        yield asset


def first_accepted_asset(candidates: Iterable[Candidate], session: requests.Session,
                         config: FaviconConfig,
                         deadline: Optional[Deadline] = None) -> Optional[FetchedAsset]:
    return next(iter_accepted_assets(candidates, session, config, deadline), None)


def remote_fallback_candidate(host: str, config: FaviconConfig,
                              size: Optional[int] = None) -> Candidate:
    url = config.remote_fallback_url.format(
        domain=quote(host, safe=""), size=size or REMOTE_FALLBACK_SIZE
    )
    return Candidate(
        url=url,
        origin_kind=OriginKind.REMOTE_FALLBACK,
        rank_score=score_candidate(size, None, "remote", OriginKind.REMOTE_FALLBACK),
        declared_size=size,
        relation_text="remote",
    )


def fetch_remote_fallback(host: str, session: requests.Session, config: FaviconConfig,
                          size: Optional[int] = None) -> Optional[FetchedAsset]:
    """Ask the external icon service. Uses its own timeout, not the request deadline."""
    candidate = remote_fallback_candidate(host, config, size)
    try:
        return fetch_candidate(candidate, session, config)
    except TransientFetchFailure as exc:
        logger.info("Remote fallback for %s failed: %s", host, exc)
        return None
