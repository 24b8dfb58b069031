"""
Small framework-free helpers shared across apps.

Functions:
    hash_string: Stable hex digest for cache keys and payload fingerprints
    stable_json_hash: Fingerprint a JSON-compatible payload
    format_brl: Render an amount as Brazilian reais
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def hash_string(value: str, algorithm: str = "sha256") -> str:
    """
    Hash a string using the specified algorithm.

    Example:
        cache_key = f"picpay:token:{hash_string(client_id)}"
    """
    hasher = hashlib.new(algorithm)
    hasher.update(value.encode("utf-8"))
    return hasher.hexdigest()


def format_brl(amount) -> str:
    """Format as Brazilian currency, e.g. 1234.5 -> "R$ 1.234,50"."""
    formatted = f"{amount:,.2f}"
    return "R$ " + formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def stable_json_hash(payload: Any) -> str:
    """
    Fingerprint a JSON-compatible payload independent of key order.

    Used to detect duplicate webhook deliveries that carry no event id.
    """
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hash_string(encoded)


__all__ = [
    "hash_string",
    "stable_json_hash",
    "format_brl",
]
