"""Invalidation log schema enforcement."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from jsonschema import Draft7Validator

logger = logging.getLogger(__name__)

INVALIDATION_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": [
        "operation",
        "started_at",
        "requested",
        "deleted",
        "failed",
        "chunks",
        "purge_scope",
        "purge_ok",
        "latency_ms_total",
    ],
    "properties": {
        "operation": {"type": "string", "enum": ["delete_many", "delete_all"]},
        "started_at": {"type": "string", "format": "date-time"},
        "requested": {"type": "integer", "minimum": 0},
        "deleted": {"type": "integer", "minimum": 0},
        "failed": {"type": "integer", "minimum": 0},
        "chunks": {"type": "integer", "minimum": 0},
        "chunk_failures": {"type": "integer", "minimum": 0},
        "purge_scope": {"type": "string", "enum": ["urls", "all", "none"]},
        "purge_ok": {"type": ["boolean", "null"]},
        "purge_error": {"type": ["string", "null"]},
        "latency_ms_total": {"type": "number", "minimum": 0},
    },
}

_validator = Draft7Validator(INVALIDATION_SCHEMA)


def validate_invalidation(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: e.path)
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"invalidation log validation failed: {messages}")


@dataclass
class InvalidationLogRecord:
    operation: str
    requested: int
    deleted: int = 0
    failed: int = 0
    chunks: int = 0
    chunk_failures: int = 0
    purge_scope: str = "none"
    # None: purge not attempted (edge disabled, or nothing to purge)
    purge_ok: Optional[bool] = None
    purge_error: Optional[str] = None
    latency_ms_total: float = 0.0
    started_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "operation": self.operation,
            "started_at": self.started_at,
            "requested": self.requested,
            "deleted": self.deleted,
            "failed": self.failed,
            "chunks": self.chunks,
            "chunk_failures": self.chunk_failures,
            "purge_scope": self.purge_scope,
            "purge_ok": self.purge_ok,
            "purge_error": self.purge_error,
            "latency_ms_total": self.latency_ms_total,
        }
        validate_invalidation(payload)
        return payload

    def emit(self, log: logging.Logger = logger) -> None:
        level = logging.INFO if not self.failed and self.purge_ok is not False else logging.WARNING
        log.log(level, f"invalidation {json.dumps(self.to_dict(), sort_keys=True)}")
