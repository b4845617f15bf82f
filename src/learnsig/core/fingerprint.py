"""Deterministic fingerprints for idempotent learning-event writes."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def canonical_json(inputs: Mapping[str, Any]) -> str:
    """Serialize ``inputs`` with recursively sorted keys and compact separators."""
    return json.dumps(inputs, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_inputs_hash(inputs: Mapping[str, Any]) -> str:
    """Return the SHA-256 hex digest of the canonical form of ``inputs``.

    Two structurally equal mappings hash identically regardless of key
    insertion order.
    """
    return hashlib.sha256(canonical_json(inputs).encode("utf-8")).hexdigest()
