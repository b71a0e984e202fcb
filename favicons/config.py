"""Runtime configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_USER_AGENT = "FaviconAPI/1.0"
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/118.0.0.0 Safari/537.36"
)
GOOGLE_S2_URL = "https://www.google.com/s2/favicons?sz={size}&domain={domain}"


def _int_env(env: Mapping[str, str], name: str, default: int,
             minimum: int = 0, maximum: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"Invalid configuration: {name} must be an integer, got {raw!r}")
    if value < minimum or (maximum is not None and value > maximum):
        bounds = f">= {minimum}" if maximum is None else f"between {minimum} and {maximum}"
        raise ValueError(f"Invalid configuration: {name} must be {bounds}, got {value}")
    return value


def _str_env(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass(frozen=True)
class FaviconConfig:
    """Settings consumed by the discovery, fetch and normalization stages.

    Timeouts are stored in seconds even though the environment carries
    milliseconds.
    """

    host: str = "0.0.0.0"
    port: int = 8080
    request_timeout: float = 5.0
    request_deadline: float = 15.0
    max_image_size: int = 5 * 1024 * 1024
    max_document_size: int = 1024 * 1024
    user_agent: str = DEFAULT_USER_AGENT
    browser_user_agent: str = BROWSER_USER_AGENT
    max_redirects: int = 5
    block_private_ips: bool = True
    default_image_url: Optional[str] = None
    cache_control_success: int = 86400
    cache_control_default: int = 3600
    cache_control_error: int = 60
    remote_fallback_enabled: bool = False
    remote_fallback_url: str = GOOGLE_S2_URL
    allowed_origins: str = "*"
    redirect_url: Optional[str] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FaviconConfig":
        env = os.environ if env is None else env
        return cls(
            host=_str_env(env, "HOST", "0.0.0.0"),
            port=_int_env(env, "PORT", 8080, 1, 65535),
            request_timeout=_int_env(env, "REQUEST_TIMEOUT", 5000, 1000) / 1000,
            request_deadline=_int_env(env, "REQUEST_DEADLINE", 15000, 1000) / 1000,
            max_image_size=_int_env(env, "MAX_IMAGE_SIZE", 5 * 1024 * 1024, 1024),
            max_document_size=_int_env(env, "MAX_DOCUMENT_SIZE", 1024 * 1024, 1024),
            user_agent=_str_env(env, "USER_AGENT", DEFAULT_USER_AGENT),
            browser_user_agent=_str_env(env, "BROWSER_USER_AGENT", BROWSER_USER_AGENT),
            max_redirects=_int_env(env, "MAX_REDIRECTS", 5, 0, 20),
            block_private_ips=(env.get("BLOCK_PRIVATE_IPS", "true").strip().lower() != "false"),
            default_image_url=_str_env(env, "DEFAULT_IMAGE_URL"),
            cache_control_success=_int_env(env, "CACHE_CONTROL_SUCCESS", 86400),
            cache_control_default=_int_env(env, "CACHE_CONTROL_DEFAULT", 3600),
            cache_control_error=_int_env(env, "CACHE_CONTROL_ERROR", 60),
            remote_fallback_enabled=(
                env.get("REMOTE_FALLBACK_ENABLED", "false").strip().lower() == "true"
            ),
            remote_fallback_url=_str_env(env, "REMOTE_FALLBACK_URL", GOOGLE_S2_URL),
            allowed_origins=_str_env(env, "ALLOWED_ORIGINS", "*"),
            redirect_url=_str_env(env, "REDIRECT_URL"),
        )
