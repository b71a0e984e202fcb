import logging
import os
import time
from datetime import datetime, timezone

from flask import Flask, Response, g, jsonify, redirect, request
from werkzeug.exceptions import HTTPException

from favicons.config import FaviconConfig
from favicons.errors import InvalidInput
from favicons.fallback_utils import FallbackImageCache
from favicons.header_utils import default_headers, error_headers, success_headers
from favicons.image_utils import content_type_for
from favicons.resolve_utils import resolve_favicon
from favicons.url_utils import parse_options, repair_path_url, validate_url

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = Flask(__name__)
app.url_map.merge_slashes = False  # keep "https://host" intact in the path
app.config["FAVICON_CONFIG"] = FaviconConfig.from_env()
app.config["FALLBACK_CACHE"] = FallbackImageCache(app.config["FAVICON_CONFIG"])


def favicon_config() -> FaviconConfig:
    return app.config["FAVICON_CONFIG"]


def error_response(message: str, status: int):
    resp = jsonify(error=message)
    resp.status_code = status
    resp.headers.update(error_headers(favicon_config()))
    return resp


@app.before_request
def start_timer():
    g.started = time.perf_counter()


@app.after_request
def finish_request(resp):
    allowed = favicon_config().allowed_origins
    if allowed == "*":
        resp.headers["Access-Control-Allow-Origin"] = "*"
    else:
        origin = request.headers.get("Origin")
        if origin and origin in [o.strip() for o in allowed.split(",")]:
            resp.headers["Access-Control-Allow-Origin"] = origin
            resp.headers.add("Vary", "Origin")

    elapsed_ms = (time.perf_counter() - g.get("started", time.perf_counter())) * 1000
    level = logging.WARNING if resp.status_code >= 400 else logging.DEBUG
    app.logger.log(level, "%s %s -> %d (%.0f ms)",
                   request.method, request.full_path.rstrip("?"), resp.status_code, elapsed_ms)
    return resp


@app.errorhandler(InvalidInput)
def handle_invalid_input(exc):
    return error_response(str(exc), 400)


@app.errorhandler(Exception)
def handle_unexpected(exc):
    if isinstance(exc, HTTPException):
        return error_response(exc.description or exc.name, exc.code or 500)
    app.logger.exception("Error processing %s", request.path)
    return error_response("Internal server error", 500)


@app.get("/health")
def health():
    return jsonify(status="ok", timestamp=datetime.now(timezone.utc).isoformat())


@app.get("/")
def index():
    config = favicon_config()
    if config.redirect_url:
        return redirect(config.redirect_url)
    return error_response("Domain parameter is required", 404)


@app.get("/<path:target>")
def favicon(target):
    config = favicon_config()
    target_url = validate_url(repair_path_url(target), config.block_private_ips)
    options = parse_options(request.args, config.block_private_ips)

    result = resolve_favicon(target_url, options, config, app.config["FALLBACK_CACHE"])
    image = result.image

    if result.is_default:
        headers = default_headers(config)
    else:
        headers = success_headers(config, image.data)

    if options.response == "json":
        resp = jsonify(
            url=result.target_url,
            sourceUrl=result.source_url,
            width=image.width,
            height=image.height,
            format=image.format,
            bytes=image.byte_size,
            source=result.source,
        )
    else:
        resp = Response(image.data, content_type=content_type_for(image.format))
    resp.headers.update(headers)

    if not result.is_default:
        return resp.make_conditional(request)
    return resp


if __name__ == '__main__':
    cfg = favicon_config()
    app.run(debug=True, host=cfg.host, port=cfg.port)
