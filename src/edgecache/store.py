"""
Object Store Access — S3-compatible (Cloudflare R2, MinIO, AWS S3)

Two access paths over the same bucket:
- ObjectStore: single-key get/put on the request-serving path
- BulkObjectStore: paginated listing and batched deletes for invalidation

Implements:
- build_s3_client(config) → boto3 S3 client
- chunked(items, size) → list of chunks
- ObjectStore.get(key) → StoredObject | None
- ObjectStore.put(key, body, http_metadata, custom_metadata) → StoredObject
- BulkObjectStore.list(prefix) → generator of keys
- BulkObjectStore.delete_batch(keys) → BatchDeleteResult
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from requests.structures import CaseInsensitiveDict

from .config import StoreConfig
from .errors import StoreError
from .metadata import HTTPMetadata, from_s3_object, to_s3_params

logger = logging.getLogger(__name__)

# S3 ListObjectsV2 / DeleteObjects hard per-call limit
MAX_KEYS_PER_CALL = 1000

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive lists of at most ``size``. Empty in, empty out."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def build_s3_client(config: StoreConfig):
    """Build a boto3 S3 client. Retries are off: failures surface immediately."""
    boto_config = BotoConfig(
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=config.connect_timeout,
        read_timeout=config.read_timeout,
    )

    kwargs: Dict[str, Any] = {"config": boto_config}
    if config.endpoint_url:
        kwargs["endpoint_url"] = config.endpoint_url
    if config.region:
        kwargs["region_name"] = config.region
    if config.access_key_id:
        kwargs["aws_access_key_id"] = config.access_key_id
        kwargs["aws_secret_access_key"] = config.secret_access_key

    return boto3.client("s3", **kwargs)


@dataclass
class StoredObject:
    """An object as held by the store. ``body`` is None on put descriptors."""
    key: str
    size: int
    etag: str
    uploaded: datetime
    http_metadata: HTTPMetadata = field(default_factory=HTTPMetadata)
    custom_metadata: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "size": self.size,
            "etag": self.etag,
            "uploaded": self.uploaded.isoformat(),
            "http_metadata": self.http_metadata.to_dict(),
            "custom_metadata": dict(self.custom_metadata),
        }


@dataclass
class BatchDeleteResult:
    """Outcome of one DeleteObjects call."""
    deleted: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


def _is_not_found(exc: ClientError) -> bool:
    error = exc.response.get("Error", {})
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error.get("Code") in ("NoSuchKey", "404", "NotFound") or status == 404


def _describe_error(err: Dict[str, str]) -> str:
    code = err.get("Code", "Error")
    message = err.get("Message")
    return f"{code}: {message}" if message else code


class ObjectStore:
    """
    Single-key access on the hot path.

    Only get and put: no listing, no multi-key calls. Concurrent puts to the
    same key are resolved by the store (last writer wins).
    """

    def __init__(self, client, bucket: str):
        self.client = client
        self.bucket = bucket

    def get(self, key: str) -> Optional[StoredObject]:
        """Fetch one object. Absence returns None, never raises."""
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                return None
            raise StoreError(f"get failed for {key}", "get", key, e) from e
        except BotoCoreError as e:
            raise StoreError(f"get failed for {key}", "get", key, e) from e

        try:
            body = resp["Body"].read()
        except BotoCoreError as e:
            raise StoreError(f"body read failed for {key}", "get", key, e) from e

        return StoredObject(
            key=key,
            size=resp.get("ContentLength", len(body)),
            etag=resp.get("ETag", ""),
            uploaded=resp.get("LastModified") or datetime.now(timezone.utc),
            http_metadata=from_s3_object(resp),
            # S3 lowercases user metadata names on the way out
            custom_metadata=CaseInsensitiveDict(resp.get("Metadata") or {}),
            body=body,
        )

    def put(
        self,
        key: str,
        body: bytes,
        http_metadata: Optional[HTTPMetadata] = None,
        custom_metadata: Optional[Dict[str, str]] = None,
    ) -> StoredObject:
        """Store or overwrite one object with a complete, length-known body."""
        http_metadata = http_metadata or HTTPMetadata()
        custom_metadata = dict(custom_metadata or {})
        try:
            resp = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentLength=len(body),
                Metadata=custom_metadata,
                **to_s3_params(http_metadata),
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"put failed for {key}", "put", key, e) from e

        return StoredObject(
            key=key,
            size=len(body),
            etag=resp.get("ETag", ""),
            uploaded=datetime.now(timezone.utc),
            http_metadata=http_metadata,
            custom_metadata=custom_metadata,
        )


class BulkObjectStore:
    """
    Listing and batched deletes on the invalidation path.

    Higher latency than ObjectStore but able to enumerate by prefix and
    delete up to MAX_KEYS_PER_CALL keys per call.
    """

    def __init__(self, client, bucket: str, page_size: int = MAX_KEYS_PER_CALL):
        if not 1 <= page_size <= MAX_KEYS_PER_CALL:
            raise ValueError(f"page_size must be 1..{MAX_KEYS_PER_CALL}, got {page_size}")
        self.client = client
        self.bucket = bucket
        self.page_size = page_size

    def list(self, prefix: Optional[str] = None) -> Iterator[str]:
        """
        Lazily yield every key under ``prefix``.

        Each call starts a fresh pagination cursor; the sequence ends with
        the first page that carries no continuation token.
        """
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "PaginationConfig": {"PageSize": self.page_size},
        }
        if prefix:
            params["Prefix"] = prefix

        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(**params):
                for obj in page.get("Contents", []):
                    key = obj.get("Key")
                    if key:
                        yield key
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"list failed (prefix={prefix!r})", "list", prefix, e) from e

    def delete_batch(self, keys: Sequence[str]) -> BatchDeleteResult:
        """Delete up to MAX_KEYS_PER_CALL keys in one call. Callers chunk."""
        if len(keys) > MAX_KEYS_PER_CALL:
            raise ValueError(
                f"delete_batch takes at most {MAX_KEYS_PER_CALL} keys, got {len(keys)}"
            )
        if not keys:
            return BatchDeleteResult()

        try:
            resp = self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": k} for k in keys], "Quiet": False},
            )
        except (ClientError, BotoCoreError) as e:
            raise StoreError(f"delete of {len(keys)} keys failed", "delete_batch", None, e) from e

        result = BatchDeleteResult(
            deleted=[d["Key"] for d in resp.get("Deleted", []) if d.get("Key")],
            errors={
                err["Key"]: _describe_error(err)
                for err in resp.get("Errors", [])
                if err.get("Key")
            },
        )
        if result.errors:
            logger.warning(
                f"DeleteObjects reported {len(result.errors)} per-key errors "
                f"out of {len(keys)} keys"
            )
        logger.debug(f"Deleted {len(result.deleted)}/{len(keys)} keys from {self.bucket}")
        return result
