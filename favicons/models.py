"""Data models passed between the pipeline stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")


class OriginKind(str, Enum):
    """Where a candidate was discovered."""

    MARKUP_LINK = "link-tag"
    MANIFEST_ENTRY = "manifest"
    WELL_KNOWN_PATH = "fallback"
    REMOTE_FALLBACK = "remote"


DEFAULT_SOURCE = "default"


@dataclass(frozen=True)
class Candidate:
    """A discovered, not yet fetched pointer to a possible icon."""

    url: str
    origin_kind: OriginKind
    rank_score: int
    declared_size: Optional[int] = None
    declared_format_hint: Optional[str] = None
    relation_text: str = ""

    @property
    def is_data_url(self) -> bool:
        return self.url.lower().startswith("data:")


@dataclass(frozen=True)
class FetchedAsset:
    """Accepted icon bytes. Always within the size limit and sniffed as an image."""

    data: bytes
    detected_format: str
    origin_kind: OriginKind
    origin_url: str


@dataclass(frozen=True)
class NormalizedImage:
    """Final image handed to the HTTP layer. Fields describe the actual bytes."""

    data: bytes
    format: str
    width: int
    height: int

    @property
    def byte_size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class FallbackRecord:
    """Default image used when every other tier failed."""

    data: bytes
    format: str
    origin_url: str


@dataclass(frozen=True)
class HtmlPage:
    """HTML body and the URL it was finally served from."""

    html: str
    final_url: str


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a stage that degrades instead of failing.

    ``value`` is set when the stage produced something; otherwise ``reason``
    says why it came back empty.
    """

    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def found(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def empty(cls, reason: str) -> "Outcome[T]":
        return cls(reason=reason)

    @property
    def ok(self) -> bool:
        return self.value is not None


@dataclass(frozen=True)
class FaviconOptions:
    """Validated query parameters of a favicon request."""

    response: str = "image"
    size: Optional[int] = None
    format: Optional[str] = None
    default_url: Optional[str] = None


@dataclass
class ResolvedFavicon:
    """What the resolver hands back to the HTTP layer."""

    image: NormalizedImage
    source: str
    source_url: str
    target_url: str
    candidates: List[Candidate] = field(default_factory=list)

    @property
    def is_default(self) -> bool:
        return self.source == DEFAULT_SOURCE
