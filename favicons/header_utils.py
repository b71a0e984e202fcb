import hashlib

from werkzeug.http import http_date

from .config import FaviconConfig

CDN_MAX_AGE = 2592000


def etag_for(content: bytes) -> str:
    return '"' + hashlib.sha1(content).hexdigest() + '"'


def success_headers(config: FaviconConfig, content: bytes) -> dict:
    return {
        "Cache-Control": f"public, max-age={config.cache_control_success}, s-maxage={CDN_MAX_AGE}",
        "ETag": etag_for(content),
        "Last-Modified": http_date(),
        "Vary": "Accept",
    }


def default_headers(config: FaviconConfig) -> dict:
    return {
        "Cache-Control": f"public, max-age={config.cache_control_default}",
        "Vary": "Accept",
    }


def error_headers(config: FaviconConfig) -> dict:
    return {"Cache-Control": f"no-cache, max-age={config.cache_control_error}"}
