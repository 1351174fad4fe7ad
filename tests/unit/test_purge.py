#!/usr/bin/env python3
"""
Unit tests for the Cloudflare purge client
"""

import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from edgecache.config import EdgeConfig
from edgecache.errors import PurgeError
from edgecache.purge import PurgeClient

EDGE = EdgeConfig(origin="https://www.example.com/", zone_id="zone-123", api_token="cf-token")
CAPPED = EdgeConfig(
    origin="https://www.example.com", zone_id="zone-123", api_token="cf-token", max_urls_per_purge=30
)
PURGE_URL = "https://api.cloudflare.com/client/v4/zones/zone-123/purge_cache"


def ok_response(purge_id="p-1"):
    resp = MagicMock()
    resp.status_code = 200
    resp.json.return_value = {"success": True, "errors": [], "result": {"id": purge_id}}
    return resp


class TestPurgeClientInit:

    def test_disabled_without_config(self):
        client = PurgeClient()
        assert client.enabled is False
        assert client.origin is None

    def test_enabled_with_config(self):
        client = PurgeClient(EDGE)
        assert client.enabled is True
        assert client.origin == "https://www.example.com"

    def test_url_for_joins_origin(self):
        assert PurgeClient(EDGE).url_for("/blog/post-1") == "https://www.example.com/blog/post-1"

    def test_url_for_key_without_leading_slash(self):
        assert PurgeClient(EDGE).url_for("blog/post") == "https://www.example.com/blog/post"

    def test_url_for_requires_origin(self):
        with pytest.raises(RuntimeError):
            PurgeClient().url_for("/a")

    def test_headers_include_bearer_token(self):
        headers = PurgeClient(EDGE)._headers()
        assert headers["Authorization"] == "Bearer cf-token"
        assert headers["Content-Type"] == "application/json"


class TestPurgeUrls:

    @patch("edgecache.purge.requests.post")
    def test_purge_urls_body(self, mock_post):
        mock_post.return_value = ok_response()

        result = PurgeClient(EDGE).purge_urls(["https://www.example.com/a"])

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args == (PURGE_URL,)
        assert kwargs["json"] == {"files": ["https://www.example.com/a"]}
        assert kwargs["timeout"] == 30
        assert result.scope == "urls"
        assert result.skipped is False
        assert result.purge_id == "p-1"

    @patch("edgecache.purge.requests.post")
    def test_single_request_without_cap(self, mock_post):
        mock_post.return_value = ok_response()
        urls = [f"https://www.example.com/p/{i}" for i in range(75)]

        result = PurgeClient(EDGE).purge_urls(urls)

        assert mock_post.call_count == 1
        assert result.calls == 1

    @patch("edgecache.purge.requests.post")
    def test_cap_splits_requests(self, mock_post):
        mock_post.side_effect = [ok_response("p-1"), ok_response("p-2"), ok_response("p-3")]
        urls = [f"https://www.example.com/p/{i}" for i in range(75)]

        result = PurgeClient(CAPPED).purge_urls(urls)

        sent = [c.kwargs["json"]["files"] for c in mock_post.call_args_list]
        assert [len(batch) for batch in sent] == [30, 30, 15]
        assert [u for batch in sent for u in batch] == urls
        assert result.calls == 3
        assert result.purge_id == "p-3"

    @patch("edgecache.purge.requests.post")
    def test_cap_stops_at_first_failed_request(self, mock_post):
        failed = MagicMock()
        failed.status_code = 429
        failed.text = "rate limited"
        mock_post.side_effect = [ok_response(), failed]
        urls = [f"https://www.example.com/p/{i}" for i in range(75)]

        with pytest.raises(PurgeError) as excinfo:
            PurgeClient(CAPPED).purge_urls(urls)

        assert excinfo.value.status_code == 429
        assert mock_post.call_count == 2

    @patch("edgecache.purge.requests.post")
    def test_empty_list_is_noop(self, mock_post):
        result = PurgeClient(EDGE).purge_urls([])
        assert result.skipped is True
        mock_post.assert_not_called()

    @patch("edgecache.purge.requests.post")
    def test_disabled_is_noop(self, mock_post):
        result = PurgeClient().purge_urls(["https://www.example.com/a"])
        assert result.skipped is True
        mock_post.assert_not_called()

    @patch("edgecache.purge.requests.post")
    def test_http_error_raises(self, mock_post):
        resp = MagicMock()
        resp.status_code = 403
        resp.text = "Forbidden"
        mock_post.return_value = resp

        with pytest.raises(PurgeError) as excinfo:
            PurgeClient(EDGE).purge_urls(["https://www.example.com/a"])
        assert excinfo.value.status_code == 403

    @patch("edgecache.purge.requests.post")
    def test_api_rejection_raises(self, mock_post):
        resp = MagicMock()
        resp.status_code = 200
        resp.json.return_value = {"success": False, "errors": [{"code": 1012, "message": "bad url"}]}
        mock_post.return_value = resp

        with pytest.raises(PurgeError, match="bad url"):
            PurgeClient(EDGE).purge_urls(["nope"])

    @patch("edgecache.purge.requests.post")
    def test_connection_error_raises_once(self, mock_post):
        mock_post.side_effect = requests.ConnectionError()

        with pytest.raises(PurgeError) as excinfo:
            PurgeClient(EDGE).purge_urls(["https://www.example.com/a"])
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)
        assert mock_post.call_count == 1

    @patch("edgecache.purge.requests.post")
    def test_timeout_raises(self, mock_post):
        mock_post.side_effect = requests.Timeout()
        with pytest.raises(PurgeError, match="timed out"):
            PurgeClient(EDGE).purge_urls(["https://www.example.com/a"])


class TestPurgeAll:

    @patch("edgecache.purge.requests.post")
    def test_purge_everything_body(self, mock_post):
        mock_post.return_value = ok_response()

        result = PurgeClient(EDGE).purge_all()

        _, kwargs = mock_post.call_args
        assert kwargs["json"] == {"purge_everything": True}
        assert result.scope == "all"

    @patch("edgecache.purge.requests.post")
    def test_disabled_is_noop(self, mock_post):
        assert PurgeClient().purge_all().skipped is True
        mock_post.assert_not_called()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
