import io
import time

import pytest
import requests
from PIL import Image

from favicons.config import FaviconConfig
from favicons.fallback_utils import FallbackImageCache

SVG_ICON = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="48" height="48" viewBox="0 0 48 48">'
    b'<circle cx="24" cy="24" r="20" fill="#f00"/></svg>'
)


class FakeRaw:
    """Stands in for urllib3's response, handing out ``step`` bytes per read."""

    def __init__(self, content, step=None, delay=0.0):
        self.content = content
        self.step = step
        self.delay = delay
        self.offset = 0

    def read1(self, amt=-1, decode_content=True):
        if self.offset >= len(self.content):
            return b""
        if self.delay:
            time.sleep(self.delay)
        size = min(amt, self.step or amt)
        chunk = self.content[self.offset:self.offset + size]
        self.offset += len(chunk)
        return chunk


class FakeResponse:
    def __init__(self, content=b"", status_code=200, url=None, headers=None,
                 encoding="utf-8", step=None, delay=0.0):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.content = content
        self.status_code = status_code
        self.url = url
        self.headers = headers or {}
        self.encoding = encoding
        self.step = step
        self.delay = delay
        self.raw = FakeRaw(content, step, delay)
        self.closed = False

    @property
    def ok(self):
        return self.status_code < 400

    def replay(self, url):
        """Fresh copy with an unread body, so a route can be fetched repeatedly."""
        return FakeResponse(self.content, self.status_code, self.url or url, self.headers,
                            self.encoding, self.step, self.delay)

    def close(self):
        self.closed = True


class FakeSession:
    """Maps URLs to canned responses; anything unknown answers 404."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.closed = False

    def get(self, url, headers=None, timeout=None, stream=False, **kwargs):
        self.calls.append((url, dict(headers or {})))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse(b"not found", 404, url=url)
        if isinstance(route, Exception):
            raise route
        if callable(route):
            route = route(headers or {})
            if isinstance(route, Exception):
                raise route
        return route.replay(url)

    def requested(self):
        return [url for url, _ in self.calls]

    def close(self):
        self.closed = True


def png_bytes(width=64, height=64, color=(200, 30, 30, 255)):
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def ico_bytes(sizes=((16, 16), (32, 32), (48, 48))):
    buf = io.BytesIO()
    Image.new("RGBA", (64, 64), (20, 120, 220, 255)).save(buf, format="ICO", sizes=list(sizes))
    return buf.getvalue()


def connection_error(*_):
    return requests.ConnectionError("connection refused")


@pytest.fixture
def config():
    return FaviconConfig(
        request_timeout=2.0,
        request_deadline=10.0,
        max_image_size=50_000,
        block_private_ips=True,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def fallback_cache(config):
    return FallbackImageCache(config)


@pytest.fixture
def client(config, fake_session, monkeypatch):
    from app import app

    monkeypatch.setitem(app.config, "FAVICON_CONFIG", config)
    monkeypatch.setitem(app.config, "FALLBACK_CACHE", FallbackImageCache(config))
    monkeypatch.setattr("favicons.resolve_utils.build_session", lambda cfg: fake_session)
    monkeypatch.setitem(app.config, "TESTING", True)
    with app.test_client() as test_client:
        yield test_client
