"""Runs one favicon request through every fallback tier."""

from __future__ import annotations

import logging
from typing import List, Optional
from urllib.parse import urlparse

import requests

from .config import FaviconConfig
from .errors import DeadlineExceeded, NotFound
from .fallback_utils import FallbackImageCache, fetch_custom_default
from .fetch_utils import Deadline, build_session, fetch_remote_fallback, first_accepted_asset
from .icon_utils import discover_candidates
from .image_utils import normalize_image
from .models import (DEFAULT_SOURCE, Candidate, FaviconOptions, FetchedAsset, OriginKind,
                     ResolvedFavicon)

logger = logging.getLogger(__name__)


def find_icon(target_url: str, session: requests.Session, config: FaviconConfig,
              deadline: Deadline) -> tuple[FetchedAsset, List[Candidate]]:
    """Discover, rank and fetch. Raises NotFound or DeadlineExceeded."""
    candidates = discover_candidates(target_url, session, config, deadline)
    asset = first_accepted_asset(candidates, session, config, deadline)
    if asset is None:
        raise NotFound(
            f"none of {len(candidates)} candidates for {target_url} was usable", candidates
        )
    return asset, candidates


def _final_host(candidates: List[Candidate], target_url: str) -> str:
    # well-known candidates always carry the post-redirect origin
    for candidate in candidates:
        if candidate.origin_kind is OriginKind.WELL_KNOWN_PATH:
            return urlparse(candidate.url).hostname or ""
    return urlparse(target_url).hostname or ""


def resolve_favicon(target_url: str, options: FaviconOptions, config: FaviconConfig,
                    fallback_cache: FallbackImageCache,
                    session: Optional[requests.Session] = None) -> ResolvedFavicon:
    """Return the best icon for ``target_url``, or the default image.

    Failures of the target site never escape: they move the request on to the
    remote provider (when enabled) and finally to the default image.
    """
    own_session = session is None
    if own_session:
        session = build_session(config)
    try:
        return _resolve(target_url, options, config, fallback_cache, session)
    finally:
        if own_session:
            session.close()


def _resolve(target_url: str, options: FaviconOptions, config: FaviconConfig,
             fallback_cache: FallbackImageCache, session: requests.Session) -> ResolvedFavicon:
    deadline = Deadline(config.request_deadline)
    candidates: List[Candidate] = []
    asset: Optional[FetchedAsset] = None
    try:
        asset, candidates = find_icon(target_url, session, config, deadline)
    except DeadlineExceeded as exc:
        logger.info("Gave up on %s: %s", target_url, exc)
    except NotFound as exc:
        candidates = exc.candidates
        logger.info("%s", exc)

    if asset is None and config.remote_fallback_enabled:
        asset = fetch_remote_fallback(_final_host(candidates, target_url), session, config, options.size)

    if asset is not None:
        image = normalize_image(asset.data, options.size, options.format)
        return ResolvedFavicon(
            image=image,
            source=asset.origin_kind.value,
            source_url=asset.origin_url,
            target_url=target_url,
            candidates=candidates,
        )

    record = None
    if options.default_url:
        record = fetch_custom_default(options.default_url, session, config)
    if record is None:
        record = fallback_cache.get()
    image = normalize_image(record.data, options.size, options.format)
    return ResolvedFavicon(
        image=image,
        source=DEFAULT_SOURCE,
        source_url=record.origin_url,
        target_url=target_url,
        candidates=candidates,
    )
