import logging
from typing import Optional

import requests

from .config import FaviconConfig
from .errors import DeadlineExceeded, TransientFetchFailure
from .fetch_utils import Deadline, read_body
from .models import HtmlPage, Outcome

logger = logging.getLogger(__name__)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"


def honest_headers(config: FaviconConfig) -> dict:
    return {"User-Agent": config.user_agent, "Accept": HTML_ACCEPT}


def browser_headers(config: FaviconConfig) -> dict:
    return {
        "User-Agent": config.browser_user_agent,
        "Accept": HTML_ACCEPT,
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
    }


def decode_html(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def _attempt(url: str, headers: dict, session: requests.Session, config: FaviconConfig,
             deadline: Optional[Deadline]) -> Outcome[HtmlPage]:
    timeout = deadline.timeout(config.request_timeout) if deadline else config.request_timeout
    try:
        resp = session.get(url, headers=headers, timeout=timeout, stream=True)
    except requests.RequestException as exc:
        return Outcome.empty(f"request failed: {exc}")
    if resp.status_code >= 400:
        resp.close()
        return Outcome.empty(f"HTTP {resp.status_code}")
    try:
        body = read_body(resp, url, config.max_document_size, deadline)
    except DeadlineExceeded:
        raise
    except TransientFetchFailure as exc:
        return Outcome.empty(str(exc))
    return Outcome.found(HtmlPage(html=decode_html(body, resp.encoding), final_url=resp.url or url))


def fetch_html(url: str, session: requests.Session, config: FaviconConfig,
               deadline: Optional[Deadline] = None) -> Outcome[HtmlPage]:
    """Fetch a page's HTML, identifying honestly first and as a browser second.

    Exactly two attempts at most. Both failing yields an empty outcome, never
    an exception, except for an exhausted request deadline.
    """
    reason = None
    for label, headers in (("honest", honest_headers(config)), ("browser", browser_headers(config))):
        outcome = _attempt(url, headers, session, config, deadline)
        if outcome.ok:
            if outcome.value.final_url != url:
                logger.debug("%s redirected to %s", url, outcome.value.final_url)
            return outcome
        reason = outcome.reason
        logger.debug("HTML fetch of %s with %s headers failed: %s", url, label, reason)
    logger.info("No HTML for %s (%s)", url, reason)
    return Outcome.empty(reason or "no HTML")
