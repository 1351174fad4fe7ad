"""
Edge Cache
Pull-style HTTP response cache on an S3-compatible origin store with
Cloudflare edge purging.
"""

from .cache import CachedResponse, EdgeCache
from .config import CacheConfig, EdgeConfig, StoreConfig, load_config
from .errors import EdgeCacheError, InvalidKeyError, PartialDeleteError, PurgeError, StoreError
from .keys import KeyResolution, resolve_key
from .metadata import HTTPMetadata, parse_http_metadata, serialize_http_metadata
from .purge import PurgeClient
from .store import BulkObjectStore, ObjectStore, StoredObject

__all__ = [
    'EdgeCache', 'CachedResponse',
    'CacheConfig', 'StoreConfig', 'EdgeConfig', 'load_config',
    'EdgeCacheError', 'InvalidKeyError', 'StoreError', 'PartialDeleteError', 'PurgeError',
    'KeyResolution', 'resolve_key',
    'HTTPMetadata', 'serialize_http_metadata', 'parse_http_metadata',
    'PurgeClient',
    'ObjectStore', 'BulkObjectStore', 'StoredObject',
]
