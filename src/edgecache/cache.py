"""
Edge Cache — pull-style HTTP response cache
Origin store: S3-compatible bucket (Cloudflare R2). Edge: Cloudflare zone.

Implements:
- match(request) → CachedResponse | None
- put(request, response) → StoredObject
- fetch(request, compute) → cached or freshly computed response
- delete(request) / delete_many(requests) → deleted keys
- delete_all() → deleted keys (purges the whole edge zone)
- keys(request=None) → list of keys

Invalidation always deletes from the origin store first and purges the edge
second, so an edge miss right after a purge cannot refill from a stale
origin entry.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from requests.models import Response
from requests.structures import CaseInsensitiveDict

from .config import CacheConfig
from .errors import PartialDeleteError, PurgeError, StoreError
from .keys import require_key
from .metadata import format_http_date, parse_http_metadata, serialize_http_metadata
from .observability import InvalidationLogRecord
from .purge import PurgeClient, PurgeResult
from .store import (
    MAX_KEYS_PER_CALL,
    BulkObjectStore,
    ObjectStore,
    StoredObject,
    build_s3_client,
    chunked,
)

logger = logging.getLogger(__name__)

# Every hit is long-lived at the edge; invalidation is by explicit purge
CDN_CACHE_CONTROL = f"public, max-age={60 * 60 * 24 * 365}"


@dataclass
class CachedResponse:
    """An HTTP response as served from (or handed to) the cache."""
    status: int = 200
    status_text: str = ""
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: Any = b""  # bytes, str, an iterable of bytes or str chunks, or None

    def __post_init__(self):
        if not isinstance(self.headers, CaseInsensitiveDict):
            self.headers = CaseInsensitiveDict(self.headers or {})

    def read(self) -> bytes:
        """Materialize the body. A streamed body is replaced by its bytes."""
        body = self.body
        if body is None:
            data = b""
        elif isinstance(body, (bytes, bytearray, memoryview)):
            data = bytes(body)
        elif isinstance(body, str):
            data = body.encode("utf-8")
        else:
            data = b"".join(
                chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
                for chunk in body
            )
        self.body = data
        return data

    @property
    def text(self) -> str:
        return self.read().decode("utf-8", errors="replace")


def _unpack_response(response: Any) -> Tuple[bytes, int, str, Any]:
    """(body, status, status text, headers) from a supported response type."""
    if isinstance(response, CachedResponse):
        return response.read(), response.status, response.status_text, response.headers
    if isinstance(response, Response):
        return response.content or b"", response.status_code, response.reason or "", response.headers
    raise TypeError(f"Unsupported response type: {type(response).__name__}")


@dataclass
class DeleteOutcome:
    """Every chunk's result, collected after all chunks settled."""
    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    chunks: int = 0
    chunk_failures: int = 0


@dataclass(frozen=True)
class EdgeCache:
    """
    Cache orchestrator over an origin object store and an edge purge API.

    Design principles:
    - Stateless: only read-only client handles, safe to share across threads
    - Hot path (match/put) uses single-key store calls only
    - Invalidation uses the bulk store, then purges the edge
    - No retries, no locking, no eviction: expiry belongs to the store/CDN
    """

    store: ObjectStore
    bulk: BulkObjectStore
    purger: PurgeClient = field(default_factory=PurgeClient)
    max_workers: int = 8

    @classmethod
    def from_config(cls, config: CacheConfig) -> "EdgeCache":
        client = build_s3_client(config.store)
        cache = cls(
            store=ObjectStore(client, config.store.bucket),
            bulk=BulkObjectStore(client, config.store.bucket),
            purger=PurgeClient(config.edge),
            max_workers=config.max_workers,
        )
        logger.info(
            f"EdgeCache initialized (bucket={config.store.bucket}, "
            f"edge={'enabled' if config.edge else 'disabled'})"
        )
        return cache

    # ── Matching ─────────────────────────────────────────────────

    def match(self, request: Any) -> Optional[CachedResponse]:
        """
        Look up the cached response for a request.

        Args:
            request: URL, URL string or request object.

        Returns:
            CachedResponse on a hit, None on a miss.

        Raises:
            InvalidKeyError: no key derivable from request (before any I/O).
            StoreError: the store failed.
        """
        key = require_key(request)
        obj = self.store.get(key)
        if obj is None:
            logger.debug(f"Cache miss: {key}")
            return None

        headers = parse_http_metadata(obj.http_metadata)
        if obj.etag:
            headers["ETag"] = obj.etag
        headers["Content-Length"] = str(obj.size)
        headers["Last-Modified"] = format_http_date(obj.uploaded)
        headers["CDN-Cache-Control"] = CDN_CACHE_CONTROL

        status = 200 if obj.body is not None else 304
        status_text = ""
        custom = CaseInsensitiveDict(obj.custom_metadata or {})
        if custom.get("statusCode"):
            try:
                status = int(custom["statusCode"])
            except ValueError:
                logger.warning(f"Ignoring bad statusCode {custom['statusCode']!r} on {key}")
        if custom.get("statusText"):
            status_text = custom["statusText"]

        logger.debug(f"Cache hit: {key} ({status}, {obj.size} bytes)")
        return CachedResponse(status=status, status_text=status_text, headers=headers, body=obj.body)

    # ── Putting ──────────────────────────────────────────────────

    def put(self, request: Any, response: Any) -> StoredObject:
        """
        Store a response under the request's key.

        The body is read fully into memory first; the store needs a complete,
        length-known payload. A CachedResponse with a streamed body keeps the
        materialized bytes, so it can still be returned to the client.
        """
        key = require_key(request)
        body, status, status_text, headers = _unpack_response(response)
        stored = self.store.put(
            key,
            body,
            http_metadata=serialize_http_metadata(headers),
            custom_metadata={
                "statusCode": str(status),
                "statusText": status_text,
            },
        )
        logger.info(f"Cached {key} ({status}, {stored.size} bytes)")
        return stored

    def fetch(self, request: Any, compute: Callable[[], Any]) -> Any:
        """Serve from cache, or compute, store and return the fresh response."""
        cached = self.match(request)
        if cached is not None:
            return cached
        response = compute()
        self.put(request, response)
        return response

    # ── Listing ──────────────────────────────────────────────────

    def keys(self, request: Any = None) -> List[str]:
        """All keys, or only those under the request's key as a prefix."""
        prefix = require_key(request) if request is not None else None
        return list(self.bulk.list(prefix))

    # ── Deletion ─────────────────────────────────────────────────

    def delete(self, request: Any) -> List[str]:
        """Evict a single entry from the store and the edge."""
        return self.delete_many([request])

    def delete_many(self, requests: Iterable[Any]) -> List[str]:
        """
        Evict several entries, then purge their URLs from the edge.

        Raises:
            InvalidKeyError: any request has no key (nothing is deleted).
            TypeError: requests is a single string or bytes, not a collection.
            PartialDeleteError: some chunks failed; the deleted part was purged.
            PurgeError: origin deletion finished but the edge purge failed.
        """
        if isinstance(requests, (str, bytes)):
            raise TypeError("delete_many takes a collection of requests; use delete() for one")
        keys = list(dict.fromkeys(require_key(r) for r in requests))
        if not keys:
            return []

        record = InvalidationLogRecord(operation="delete_many", requested=len(keys))
        started = time.time()
        outcome = self._delete_keys(keys)
        return self._finish(record, outcome, started, self._purge_step(keys, outcome))

    def delete_all(self) -> List[str]:
        """
        Evict every entry and purge the entire edge zone.

        LAST RESORT. Purging everything makes every path miss at the edge at
        once, and each of those misses recomputes at the origin.
        """
        keys = list(self.bulk.list())
        record = InvalidationLogRecord(operation="delete_all", requested=len(keys))
        started = time.time()
        outcome = self._delete_keys(keys) if keys else DeleteOutcome()
        return self._finish(
            record, outcome, started, self._purge_step(keys, outcome, everything=True)
        )

    def _purge_step(
        self, keys: List[str], outcome: DeleteOutcome, everything: bool = False
    ) -> Optional[Callable[[], PurgeResult]]:
        """
        The purge to run once deletion has settled, or None without an edge.

        Keys the store reported as failed are still at the origin and are not
        purged; a failed delete_all falls back to purging the deleted URLs.
        The URL purge is split by the purger when its edge config caps the
        files per request.
        """
        if not self.purger.enabled:
            return None
        if everything and not outcome.failed:
            return self.purger.purge_all

        def purge_deleted() -> PurgeResult:
            urls = [self.purger.url_for(k) for k in keys if k not in outcome.failed]
            return self.purger.purge_urls(urls)

        return purge_deleted

    def _delete_keys(self, keys: List[str]) -> DeleteOutcome:
        """
        Delete keys in chunks of MAX_KEYS_PER_CALL, all chunks concurrently.

        Returns only once every chunk call has settled, success or failure.
        """
        chunks = chunked(keys, MAX_KEYS_PER_CALL)
        outcome = DeleteOutcome(chunks=len(chunks))
        if not chunks:
            return outcome

        workers = max(1, min(self.max_workers, len(chunks)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="edgecache-delete") as pool:
            futures = [pool.submit(self.bulk.delete_batch, chunk) for chunk in chunks]
            wait(futures)

        unexpected: Optional[BaseException] = None
        for index, (chunk, future) in enumerate(zip(chunks, futures)):
            exc = future.exception()
            if exc is None:
                result = future.result()
                outcome.deleted.extend(result.deleted)
                outcome.failed.update(result.errors)
                continue
            outcome.chunk_failures += 1
            logger.error(f"Delete chunk {index + 1}/{len(chunks)} ({len(chunk)} keys) failed: {exc}")
            for key in chunk:
                outcome.failed[key] = str(exc)
            if not isinstance(exc, StoreError) and unexpected is None:
                unexpected = exc

        if unexpected is not None:
            raise unexpected
        return outcome

    def _finish(
        self,
        record: InvalidationLogRecord,
        outcome: DeleteOutcome,
        started: float,
        purge: Optional[Callable[[], Optional[PurgeResult]]],
    ) -> List[str]:
        """Purge (origin deletion has settled by now), log, and report."""
        record.deleted = len(outcome.deleted)
        record.failed = len(outcome.failed)
        record.chunks = outcome.chunks
        record.chunk_failures = outcome.chunk_failures

        try:
            result = purge() if purge else None
            if result is not None and not result.skipped:
                record.purge_scope = result.scope
                record.purge_ok = True
        except PurgeError as e:
            record.purge_ok = False
            record.purge_error = e.message
            e.deleted = list(outcome.deleted)
            if outcome.failed:
                e.details["failed"] = len(outcome.failed)
            raise
        finally:
            record.latency_ms_total = round((time.time() - started) * 1000, 3)
            record.emit()

        if outcome.failed:
            raise PartialDeleteError(outcome.deleted, outcome.failed)
        logger.info(f"{record.operation}: deleted {len(outcome.deleted)} keys")
        return outcome.deleted
