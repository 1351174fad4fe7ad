"""
Cloudflare Purge Client — Edge invalidation for the origin cache
Wraps the zone purge endpoint (api.cloudflare.com/client/v4).

Implements:
- purge_urls(urls) -> PurgeResult
- purge_all() -> PurgeResult
- url_for(key) -> absolute URL on the configured origin

Without an EdgeConfig every call is a no-op and the cache runs as a plain
origin-store cache.
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .config import EdgeConfig
from .errors import PurgeError

logger = logging.getLogger(__name__)


@dataclass
class PurgeResult:
    """Result of a purge call."""
    scope: str  # "urls" | "all" | "none"
    urls: List[str] = field(default_factory=list)
    skipped: bool = False
    status_code: Optional[int] = None
    purge_id: Optional[str] = None
    calls: int = 0
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class PurgeClient:
    """
    Edge purge client.

    Auth: Bearer API token with the zone's Cache Purge permission.
    """

    def __init__(self, config: Optional[EdgeConfig] = None):
        self.config = config
        if config is None:
            logger.info("PurgeClient initialized without edge config (purging disabled)")
        else:
            logger.info(f"PurgeClient initialized (zone={config.zone_id}, origin={config.origin})")

    @property
    def enabled(self) -> bool:
        return self.config is not None

    @property
    def origin(self) -> Optional[str]:
        return self.config.origin.rstrip("/") if self.config else None

    def url_for(self, key: str) -> str:
        """Absolute edge URL for a cache key."""
        if not self.config:
            raise RuntimeError("No edge origin configured")
        return f"{self.origin}/{key.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.api_token}",
        }

    def _post(self, payload: Dict[str, Any], scope: str) -> requests.Response:
        """POST a purge body. Any failure raises PurgeError; nothing is retried."""
        try:
            resp = requests.post(
                self.config.purge_url,
                headers=self._headers(),
                json=payload,
                timeout=self.config.timeout,
            )
        except requests.Timeout as e:
            logger.error(f"Purge timeout ({scope})")
            raise PurgeError(f"Purge request timed out ({scope})", original_error=e) from e
        except requests.RequestException as e:
            logger.error(f"Purge connection error ({scope}): {e}")
            raise PurgeError(f"Purge request failed ({scope})", original_error=e) from e

        if resp.status_code >= 400:
            logger.error(f"Purge API error ({scope}): {resp.status_code} {resp.text[:300]}")
            raise PurgeError(
                f"Purge API returned {resp.status_code} ({scope})",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("success") is False:
            messages = "; ".join(str(err.get("message", err)) for err in data.get("errors", []))
            logger.error(f"Purge API rejected request ({scope}): {messages}")
            raise PurgeError(
                f"Purge API rejected request ({scope}): {messages}",
                status_code=resp.status_code,
            )
        return resp

    @staticmethod
    def _purge_id(resp: requests.Response) -> Optional[str]:
        try:
            data = resp.json()
        except ValueError:
            return None
        result = data.get("result") if isinstance(data, dict) else None
        return result.get("id") if isinstance(result, dict) else None

    # ── Purge operations ─────────────────────────────────────────

    def purge_urls(self, urls: List[str]) -> PurgeResult:
        """
        Purge exactly the given absolute URLs from the edge.

        The zone API caps the number of files per request (30 on most plans).
        With ``max_urls_per_purge`` set, the list is sent in consecutive
        requests of that size; the first failing request raises PurgeError
        and the URLs after it are not sent. Without it, one request carries
        every URL.
        """
        urls = list(urls)
        if not self.enabled or not urls:
            return PurgeResult(scope="urls", urls=urls, skipped=True)

        size = self.config.max_urls_per_purge or len(urls)
        resp = None
        calls = 0
        for start in range(0, len(urls), size):
            resp = self._post({"files": urls[start:start + size]}, "urls")
            calls += 1
        logger.info(f"Purged {len(urls)} URLs from edge zone {self.config.zone_id} ({calls} requests)")
        return PurgeResult(
            scope="urls",
            urls=urls,
            status_code=resp.status_code,
            purge_id=self._purge_id(resp),
            calls=calls,
        )

    def purge_all(self) -> PurgeResult:
        """
        Purge the entire edge zone.

        Every path misses at the edge afterwards, so every path gets
        recomputed at the origin. Last resort only.
        """
        if not self.enabled:
            return PurgeResult(scope="all", skipped=True)

        resp = self._post({"purge_everything": True}, "all")
        logger.warning(f"Purged EVERYTHING from edge zone {self.config.zone_id}")
        return PurgeResult(
            scope="all",
            status_code=resp.status_code,
            purge_id=self._purge_id(resp),
            calls=1,
        )
