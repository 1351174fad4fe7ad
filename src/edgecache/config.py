"""Configuration loader for the edge cache."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

CLOUDFLARE_API_BASE = "https://api.cloudflare.com/client/v4"


@dataclass(frozen=True)
class StoreConfig:
    bucket: str
    endpoint_url: Optional[str] = None
    region: Optional[str] = "auto"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    connect_timeout: int = 10
    read_timeout: int = 30


@dataclass(frozen=True)
class EdgeConfig:
    origin: str
    zone_id: str
    api_token: str
    api_base: str = CLOUDFLARE_API_BASE
    timeout: int = 30
    max_urls_per_purge: Optional[int] = None  # None: one request per purge

    @property
    def purge_url(self) -> str:
        return f"{self.api_base.rstrip('/')}/zones/{self.zone_id}/purge_cache"


@dataclass(frozen=True)
class CacheConfig:
    store: StoreConfig
    edge: Optional[EdgeConfig]
    max_workers: int = 8

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        store_data = data.get("store", {})
        bucket = store_data.get("bucket")
        if not bucket:
            raise ValueError("store.bucket is required")

        store = StoreConfig(
            bucket=bucket,
            endpoint_url=store_data.get("endpoint_url"),
            region=store_data.get("region", "auto"),
            access_key_id=store_data.get("access_key_id"),
            secret_access_key=store_data.get("secret_access_key"),
            connect_timeout=int(store_data.get("connect_timeout", 10)),
            read_timeout=int(store_data.get("read_timeout", 30)),
        )

        # Edge purging is all-or-nothing: a partial block disables it
        edge_data = data.get("edge") or {}
        edge = None
        if all(edge_data.get(k) for k in ("origin", "zone_id", "api_token")):
            purge_cap = edge_data.get("max_urls_per_purge")
            if purge_cap is not None and int(purge_cap) < 1:
                raise ValueError("edge.max_urls_per_purge must be at least 1")
            edge = EdgeConfig(
                origin=str(edge_data["origin"]).rstrip("/"),
                zone_id=str(edge_data["zone_id"]),
                api_token=str(edge_data["api_token"]),
                api_base=edge_data.get("api_base", CLOUDFLARE_API_BASE),
                timeout=int(edge_data.get("timeout", 30)),
                max_urls_per_purge=int(purge_cap) if purge_cap else None,
            )

        return cls(
            store=store,
            edge=edge,
            max_workers=int(data.get("max_workers", 8)),
        )


ENV_MAP = {
    "max_workers": "EDGECACHE_MAX_WORKERS",
    "store.bucket": "EDGECACHE_BUCKET",
    "store.endpoint_url": "R2_ENDPOINT_URL",
    "store.region": "R2_REGION",
    "store.access_key_id": "R2_ACCESS_KEY_ID",
    "store.secret_access_key": "R2_SECRET_ACCESS_KEY",
    "edge.origin": "CF_ORIGIN",
    "edge.zone_id": "CF_ZONE_ID",
    "edge.api_token": "CF_API_TOKEN",
    "edge.timeout": "CF_PURGE_TIMEOUT",
    "edge.max_urls_per_purge": "CF_PURGE_MAX_URLS",
}

INT_FIELDS = {"max_workers", "timeout", "connect_timeout", "read_timeout", "max_urls_per_purge"}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for dotted_key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        target = merged
        parts = dotted_key.split(".")
        for part in parts[:-1]:
            # "edge:" with no body loads as None
            if not isinstance(target.get(part), dict):
                target[part] = {}
            target = target[part]
        last = parts[-1]
        if last in INT_FIELDS:
            value = int(value)
        target[last] = value

    return merged


def load_config(config_path: str | Path = "config/edgecache.defaults.yml") -> CacheConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return CacheConfig.from_dict(data)
