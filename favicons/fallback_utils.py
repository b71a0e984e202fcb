"""The default image served when no icon could be found."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import requests

from .config import FaviconConfig
from .errors import TransientFetchFailure
from .fetch_utils import build_session, download_image
from .image_utils import detect_format
from .models import FallbackRecord

logger = logging.getLogger(__name__)

BUNDLED_DEFAULT = Path(__file__).resolve().parent / "static" / "default.svg"


def load_bundled_default() -> FallbackRecord:
    data = BUNDLED_DEFAULT.read_bytes()
    return FallbackRecord(data=data, format="svg", origin_url=BUNDLED_DEFAULT.name)


def fetch_custom_default(url: str, session: requests.Session,
                         config: FaviconConfig) -> Optional[FallbackRecord]:
    """Fetch a caller-supplied default image. Never cached; None on failure."""
    try:
        data = download_image(url, session, config)
    except TransientFetchFailure as exc:
        logger.info("Custom default image %s unavailable: %s", url, exc)
        return None
    return FallbackRecord(data=data, format=detect_format(data), origin_url=url)


class FallbackImageCache:
    """Process-wide default image, loaded once and read-only afterwards.

    The configured DEFAULT_IMAGE_URL is fetched on first use (or on ``warm``);
    when it is unset or fails the bundled SVG is used instead. A lock makes
    sure concurrent first requests trigger a single fetch.
    """

    def __init__(self, config: FaviconConfig,
                 session_factory: Callable[[FaviconConfig], requests.Session] = build_session):
        self.config = config
        self.session_factory = session_factory
        self._record: Optional[FallbackRecord] = None
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._record is not None

    def get(self) -> FallbackRecord:
        record = self._record
        if record is None:
            with self._lock:
                if self._record is None:
                    self._record = self._load()
                record = self._record
        return record

    warm = get

    def _load(self) -> FallbackRecord:
        url = self.config.default_image_url
        if url:
            session = self.session_factory(self.config)
            try:
                data = download_image(url, session, self.config)
                record = FallbackRecord(data=data, format=detect_format(data), origin_url=url)
                logger.info("Fallback image cached from %s (%s, %d bytes)",
                            url, record.format, len(data))
                return record
            except TransientFetchFailure as exc:
                logger.error("Error fetching default image %s, using bundled default: %s", url, exc)
            finally:
                session.close()
        record = load_bundled_default()
        logger.info("Fallback image cached from bundled %s", record.origin_url)
        return record
