#!/usr/bin/env python3
"""
Unit tests for the HTTP metadata codec
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from edgecache.metadata import (
    HTTPMetadata,
    format_http_date,
    from_s3_object,
    parse_http_metadata,
    serialize_http_metadata,
    to_s3_params,
)

FULL_HEADERS = {
    "Cache-Control": "public, max-age=60",
    "Expires": "Wed, 21 Oct 2015 07:28:00 GMT",
    "Content-Type": "text/html; charset=utf-8",
    "Content-Disposition": 'inline; filename="a.html"',
    "Content-Encoding": "gzip",
    "Content-Language": "en-US",
}


class TestSerialize:

    def test_all_six_fields(self):
        meta = serialize_http_metadata(FULL_HEADERS)
        assert meta.cache_control == "public, max-age=60"
        assert meta.cache_expiry == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)
        assert meta.content_type == "text/html; charset=utf-8"
        assert meta.content_disposition == 'inline; filename="a.html"'
        assert meta.content_encoding == "gzip"
        assert meta.content_language == "en-US"

    def test_case_insensitive_lookup(self):
        meta = serialize_http_metadata({"content-TYPE": "text/plain"})
        assert meta.content_type == "text/plain"

    def test_absent_fields_not_defaulted(self):
        meta = serialize_http_metadata({"Content-Type": "text/plain", "X-Other": "1"})
        assert meta.to_dict() == {"content_type": "text/plain"}

    def test_empty_and_none(self):
        assert serialize_http_metadata({}) == HTTPMetadata()
        assert serialize_http_metadata(None) == HTTPMetadata()

    def test_bad_expires_dropped(self):
        meta = serialize_http_metadata({"Expires": "0", "Cache-Control": "no-cache"})
        assert meta.cache_expiry is None
        assert meta.cache_control == "no-cache"

    def test_offset_expires_normalized_to_utc(self):
        meta = serialize_http_metadata({"Expires": "Wed, 21 Oct 2015 09:28:00 +0200"})
        assert meta.cache_expiry == datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)


class TestDeserialize:

    def test_none_gives_empty_headers(self):
        assert len(parse_http_metadata(None)) == 0

    def test_only_present_fields_set(self):
        headers = parse_http_metadata(HTTPMetadata(content_type="image/png"))
        assert dict(headers) == {"Content-Type": "image/png"}

    def test_expiry_rendered_as_gmt(self):
        headers = parse_http_metadata(
            HTTPMetadata(cache_expiry=datetime(2030, 1, 1, tzinfo=timezone(timedelta(hours=-5))))
        )
        assert headers["expires"] == "Tue, 01 Jan 2030 05:00:00 GMT"

    def test_naive_datetime_treated_as_utc(self):
        assert format_http_date(datetime(2030, 1, 1)) == "Tue, 01 Jan 2030 00:00:00 GMT"


class TestRoundTrip:

    def test_round_trip_full(self):
        headers = parse_http_metadata(serialize_http_metadata(FULL_HEADERS))
        assert {k.lower(): v for k, v in headers.items()} == {
            k.lower(): v for k, v in FULL_HEADERS.items()
        }

    @pytest.mark.parametrize("name", list(FULL_HEADERS))
    def test_round_trip_single_field(self, name):
        headers = parse_http_metadata(serialize_http_metadata({name: FULL_HEADERS[name]}))
        assert list(headers.items()) == [(name, FULL_HEADERS[name])]


class TestS3Mapping:

    def test_to_s3_params_skips_unset(self):
        params = to_s3_params(HTTPMetadata(content_type="text/html", cache_control="no-store"))
        assert params == {"ContentType": "text/html", "CacheControl": "no-store"}

    def test_from_s3_object(self):
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        meta = from_s3_object({
            "ContentType": "text/html",
            "ContentLanguage": "de",
            "Expires": expires,
            "ETag": '"abc"',
        })
        assert meta == HTTPMetadata(
            content_type="text/html", content_language="de", cache_expiry=expires
        )

    def test_from_s3_object_expires_string(self):
        meta = from_s3_object({"ExpiresString": "Tue, 01 Jan 2030 00:00:00 GMT"})
        assert meta.cache_expiry == datetime(2030, 1, 1, tzinfo=timezone.utc)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
