import base64
import time

import pytest

from conftest import SVG_ICON, FakeResponse, FakeSession, connection_error, png_bytes
from favicons.errors import DeadlineExceeded, TransientFetchFailure
from favicons.fetch_utils import (
    Deadline,
    decode_data_url,
    download_image,
    first_accepted_asset,
    iter_accepted_assets,
    read_body,
    remote_fallback_candidate,
)
from favicons.models import Candidate, OriginKind


def _candidate(url, score=50, kind=OriginKind.MARKUP_LINK):
    return Candidate(url=url, origin_kind=kind, rank_score=score)


def test_decode_base64_data_url():
    payload = base64.b64encode(png_bytes(4, 4)).decode()
    assert decode_data_url(f"data:image/png;base64,{payload}") == png_bytes(4, 4)


def test_decode_percent_encoded_data_url():
    url = "data:image/svg+xml,%3Csvg%20xmlns%3D%22http://www.w3.org/2000/svg%22%3E%3C/svg%3E"
    assert decode_data_url(url) == b'<svg xmlns="http://www.w3.org/2000/svg"></svg>'


def test_decode_rejects_malformed_data_url():
    with pytest.raises(TransientFetchFailure):
        decode_data_url("data:image/png;base64")


def test_download_rejects_non_images(config):
    session = FakeSession({"https://example.com/icon.png": FakeResponse("<html>nope</html>")})
    with pytest.raises(TransientFetchFailure, match="not an image"):
        download_image("https://example.com/icon.png", session, config)


def test_download_rejects_error_status(config):
    session = FakeSession({"https://example.com/icon.png": FakeResponse(png_bytes(), 500)})
    with pytest.raises(TransientFetchFailure, match="HTTP 500"):
        download_image("https://example.com/icon.png", session, config)


def test_download_rejects_empty_body(config):
    session = FakeSession({"https://example.com/icon.png": FakeResponse(b"")})
    with pytest.raises(TransientFetchFailure, match="empty"):
        download_image("https://example.com/icon.png", session, config)


def test_download_wraps_transport_errors(config):
    session = FakeSession({"https://example.com/icon.png": connection_error})
    with pytest.raises(TransientFetchFailure):
        download_image("https://example.com/icon.png", session, config)


def test_oversized_candidate_is_skipped_for_next_ranked(config):
    big = png_bytes() + b"\0" * (config.max_image_size + 1)
    small = png_bytes(32, 32)
    session = FakeSession({
        "https://example.com/big.png": FakeResponse(big),
        "https://example.com/small.png": FakeResponse(small),
    })
    candidates = [_candidate("https://example.com/big.png", 140), _candidate("https://example.com/small.png", 90)]
    asset = first_accepted_asset(candidates, session, config)
    assert asset.origin_url == "https://example.com/small.png"
    assert asset.data == small
    assert asset.detected_format == "png"
    assert session.requested() == ["https://example.com/big.png", "https://example.com/small.png"]


def test_iteration_is_lazy_and_stops_at_first_acceptance(config):
    session = FakeSession({
        "https://example.com/a.png": FakeResponse(b"garbage"),
        "https://example.com/b.svg": FakeResponse(SVG_ICON),
        "https://example.com/c.png": FakeResponse(png_bytes()),
    })
    candidates = [_candidate(f"https://example.com/{name}") for name in ("a.png", "b.svg", "c.png")]
    asset = first_accepted_asset(candidates, session, config)
    assert asset.detected_format == "svg"
    assert "https://example.com/c.png" not in session.requested()

    accepted = list(iter_accepted_assets(candidates, session, config))
    assert [a.origin_url for a in accepted] == ["https://example.com/b.svg", "https://example.com/c.png"]


def test_data_url_candidates_skip_the_network(config):
    url = "data:image/svg+xml," + SVG_ICON.decode()
    session = FakeSession()
    asset = first_accepted_asset([_candidate(url)], session, config)
    assert asset.data == SVG_ICON
    assert asset.origin_url == url
    assert session.calls == []


def test_exhaustion_returns_none(config):
    session = FakeSession()
    assert first_accepted_asset([_candidate("https://example.com/favicon.ico")], session, config) is None


def test_expired_deadline_stops_the_chain(config):
    deadline = Deadline(0)
    session = FakeSession({"https://example.com/c.png": FakeResponse(png_bytes())})
    with pytest.raises(DeadlineExceeded):
        first_accepted_asset([_candidate("https://example.com/c.png")], session, config, deadline)
    assert session.calls == []


def test_deadline_clips_per_call_timeout():
    deadline = Deadline(1.0)
    assert deadline.timeout(5.0) <= 1.0
    assert deadline.timeout(0.25) == 0.25


def test_remote_fallback_candidate(config):
    candidate = remote_fallback_candidate("example.com", config, 128)
    assert candidate.url == "https://www.google.com/s2/favicons?sz=128&domain=example.com"
    assert candidate.origin_kind is OriginKind.REMOTE_FALLBACK
    assert candidate.rank_score == 5


def test_read_body_stops_a_trickling_transfer_at_the_deadline():
    resp = FakeResponse(b" " * 200, step=1, delay=0.02)
    started = time.monotonic()
    with pytest.raises(DeadlineExceeded):
        read_body(resp, "https://slow.example", 10_000, Deadline(0.2))
    assert time.monotonic() - started < 1.0
    assert resp.closed


def test_read_body_caps_size_and_closes():
    resp = FakeResponse(b"x" * 5000)
    with pytest.raises(TransientFetchFailure, match="larger than 4096 bytes"):
        read_body(resp, "https://big.example", 4096)
    assert resp.closed


def test_read_body_collects_small_arrivals():
    resp = FakeResponse(b"<html></html>", step=3)
    assert read_body(resp, "https://example.com", 1024, Deadline(5)) == b"<html></html>"
