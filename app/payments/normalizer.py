"""
Provider status normalization.

Reduces a provider's raw status string to the internal tristate
(approved, cancelled, pending). Matching is case-insensitive and ignores
surrounding whitespace. Anything unknown, missing or of the wrong type is
``pending``: the caller keeps polling instead of acting on a guess.

Usage:
    from payments.normalizer import normalize_status

    normalize_status("picpay", "PAID ")       # NormalizedStatus.APPROVED
    normalize_status("mercadopago", "foobar") # NormalizedStatus.PENDING
"""

from __future__ import annotations

from typing import Any

from payments.providers.base import RawStatusPayload
from payments.state_machines import NormalizedStatus, PaymentProvider

APPROVED_STATUSES: dict[str, frozenset[str]] = {
    PaymentProvider.PICPAY: frozenset(
        {"paid", "approved", "completed", "settled", "authorized", "captured"}
    ),
    PaymentProvider.MERCADOPAGO: frozenset(
        {"approved", "authorized", "paid", "completed", "settled", "captured"}
    ),
}

CANCELLED_STATUSES: dict[str, frozenset[str]] = {
    PaymentProvider.PICPAY: frozenset(
        {"expired", "inactive", "cancelled", "canceled", "refunded", "rejected", "failed"}
    ),
    PaymentProvider.MERCADOPAGO: frozenset(
        {"cancelled", "canceled", "rejected", "refunded", "charged_back", "expired", "failed"}
    ),
}


def normalize_status(provider: str, raw: Any) -> NormalizedStatus:
    """
    Map a raw provider status to approved/cancelled/pending.

    Args:
        provider: Provider kind
        raw: Raw status string, a RawStatusPayload, or anything else

    Returns:
        NormalizedStatus; never raises
    """
    if isinstance(raw, RawStatusPayload):
        raw = raw.raw_status
    if not isinstance(raw, str):
        return NormalizedStatus.PENDING

    status = raw.strip().lower()
    if status in APPROVED_STATUSES.get(provider, frozenset()):
        return NormalizedStatus.APPROVED
    if status in CANCELLED_STATUSES.get(provider, frozenset()):
        return NormalizedStatus.CANCELLED
    return NormalizedStatus.PENDING


__all__ = [
    "APPROVED_STATUSES",
    "CANCELLED_STATUSES",
    "normalize_status",
]
