"""
Cache Key Resolution

Implements:
- resolve_key(source) → KeyResolution (never raises)
- require_key(source) → key string, or InvalidKeyError
- Two requests with the same path (query and host ignored) share a key
- "" is never a valid key
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
from urllib.parse import ParseResult, SplitResult, urlsplit

from .errors import InvalidKeyError

logger = logging.getLogger(__name__)


class KeySource(Enum):
    """Recognised shapes of key-derivation input."""
    PATH = "path"                  # relative URL string, e.g. "/blog/post-1?x=1"
    ABSOLUTE_URL = "absolute_url"  # "https://host/path?query"
    PARSED_URL = "parsed_url"      # urllib.parse SplitResult / ParseResult
    REQUEST = "request"            # object exposing .url
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class KeyResolution:
    source: KeySource
    key: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.key)


def _path_of(url: str) -> str:
    # An absolute URL always has a path; browsers report "/" for a bare host
    return urlsplit(url).path or "/"


def _relative_path(value: str) -> Optional[str]:
    """Path part of a relative URL, rooted at "/"; None when there is none."""
    path = urlsplit(value).path
    if not path:
        return None
    return path if path.startswith("/") else f"/{path}"


def _is_absolute(value: str) -> bool:
    parts = urlsplit(value)
    return bool(parts.scheme and parts.netloc)


def classify(source: Any) -> KeySource:
    if isinstance(source, str):
        return KeySource.ABSOLUTE_URL if _is_absolute(source) else KeySource.PATH
    if isinstance(source, (SplitResult, ParseResult)):
        return KeySource.PARSED_URL
    if source is not None and hasattr(source, "url"):
        return KeySource.REQUEST
    return KeySource.UNKNOWN


def resolve_key(source: Any) -> KeyResolution:
    """
    Derive the cache key for a URL, URL string or request object.

    Args:
        source: Path string, absolute URL string, parsed URL, or any request
            object with a ``url`` attribute (``requests.Request``,
            ``requests.PreparedRequest``, framework requests whose ``url``
            has a ``path``).

    Returns:
        KeyResolution; ``ok`` is False when no key could be derived.
    """
    kind = classify(source)

    if kind is KeySource.PATH:
        return KeyResolution(kind, _relative_path(source))

    if kind is KeySource.ABSOLUTE_URL:
        return KeyResolution(kind, _path_of(source))

    if kind is KeySource.PARSED_URL:
        path = source.path or ("/" if source.netloc else "")
        return KeyResolution(kind, path or None)

    if kind is KeySource.REQUEST:
        url = source.url
        if isinstance(url, str) and url:
            path = _path_of(url) if _is_absolute(url) else _relative_path(url)
            return KeyResolution(kind, path)
        path = getattr(url, "path", None)
        if isinstance(path, str) and path:
            return KeyResolution(kind, path)
        return KeyResolution(kind)

    return KeyResolution(kind)


def require_key(source: Any) -> str:
    """Resolve a key or raise InvalidKeyError before any I/O happens."""
    resolution = resolve_key(source)
    if not resolution.ok:
        logger.warning(f"No cache key derivable from {resolution.source.value} input")
        raise InvalidKeyError(source)
    return resolution.key
