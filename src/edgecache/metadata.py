"""
HTTP Metadata Codec

Object stores keep a handful of HTTP attributes next to the payload. This
module maps the six cacheable response headers onto those fields and back.

Implements:
- serialize_http_metadata(headers) → HTTPMetadata
- parse_http_metadata(metadata) → CaseInsensitiveDict of headers
- to_s3_params(metadata) → PutObject keyword arguments
- from_s3_object(response) → HTTPMetadata from a GetObject response
"""

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Any, Dict, Mapping, Optional

from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)


# field name → (request header name, response header name, S3 parameter)
FIELDS = {
    "cache_control": ("cache-control", "Cache-Control", "CacheControl"),
    "cache_expiry": ("expires", "Expires", "Expires"),
    "content_type": ("content-type", "Content-Type", "ContentType"),
    "content_disposition": ("content-disposition", "Content-Disposition", "ContentDisposition"),
    "content_encoding": ("content-encoding", "Content-Encoding", "ContentEncoding"),
    "content_language": ("content-language", "Content-Language", "ContentLanguage"),
}


@dataclass(frozen=True)
class HTTPMetadata:
    """HTTP attributes stored alongside an object. Absent fields stay None."""
    cache_control: Optional[str] = None
    cache_expiry: Optional[datetime] = None
    content_type: Optional[str] = None
    content_disposition: Optional[str] = None
    content_encoding: Optional[str] = None
    content_language: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_http_date(value: str) -> Optional[datetime]:
    """Parse an RFC 7231 / RFC 2822 date. Returns None when unparseable."""
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    return _as_utc(parsed) if parsed else None


def format_http_date(value: datetime) -> str:
    """Render a datetime as an IMF-fixdate, e.g. 'Wed, 21 Oct 2015 07:28:00 GMT'."""
    return format_datetime(_as_utc(value), usegmt=True)


def serialize_http_metadata(headers: Optional[Mapping[str, str]]) -> HTTPMetadata:
    """
    Pick the cacheable headers out of a response.

    Headers are matched case-insensitively. Anything not present is left
    out; nothing is defaulted.
    """
    if not headers:
        return HTTPMetadata()
    lookup = CaseInsensitiveDict(headers)

    values: Dict[str, Any] = {}
    for field_name, (header, _, _) in FIELDS.items():
        raw = lookup.get(header)
        if not raw:
            continue
        if field_name == "cache_expiry":
            expiry = parse_http_date(raw)
            if expiry is None:
                logger.warning(f"Dropping unparseable Expires header: {raw!r}")
                continue
            values[field_name] = expiry
        else:
            values[field_name] = raw
    return HTTPMetadata(**values)


def parse_http_metadata(metadata: Optional[HTTPMetadata]) -> CaseInsensitiveDict:
    """Turn stored HTTP metadata back into response headers."""
    headers = CaseInsensitiveDict()
    if metadata is None:
        return headers
    for field_name, (_, header, _) in FIELDS.items():
        value = getattr(metadata, field_name)
        if not value:
            continue
        headers[header] = format_http_date(value) if field_name == "cache_expiry" else value
    return headers


# ── S3 field mapping ─────────────────────────────────────────────


def to_s3_params(metadata: HTTPMetadata) -> Dict[str, Any]:
    """PutObject keyword arguments for the fields that are set."""
    params = {}
    for field_name, (_, _, s3_name) in FIELDS.items():
        value = getattr(metadata, field_name)
        if value:
            params[s3_name] = value
    return params


def from_s3_object(response: Mapping[str, Any]) -> HTTPMetadata:
    """Read HTTP metadata out of a GetObject / HeadObject response."""
    values: Dict[str, Any] = {}
    for field_name, (_, _, s3_name) in FIELDS.items():
        if field_name == "cache_expiry":
            continue
        value = response.get(s3_name)
        if value:
            values[field_name] = value

    # Newer botocore releases hand back the raw string as ExpiresString
    expires = response.get("Expires")
    if isinstance(expires, datetime):
        values["cache_expiry"] = _as_utc(expires)
    elif response.get("ExpiresString") or isinstance(expires, str):
        parsed = parse_http_date(response.get("ExpiresString") or expires)
        if parsed is not None:
            values["cache_expiry"] = parsed

    return HTTPMetadata(**values)
