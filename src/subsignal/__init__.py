# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""subsignal: recurring-payment detection for web pages and billing email.

Independent pattern detectors emit typed signals which are fused into one
confidence-scored answer to "is this a subscription, for how much, how
often, from whom?":
- SubscriptionCandidate: result of scanning a page (or a non-gateway email)
- EmailDetection: result of scanning an email, gateway-aware
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

__version__ = "0.1.0"


@dataclass(frozen=True, slots=True)
class CandidateMetadata:
    """Provenance of a candidate."""

    page_type: str = "general"  # billing, pricing, signup, dashboard, general
    url: str = ""
    timestamp: datetime | None = field(default=None, compare=False)
    signal_count: int = 0
    confirmed_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_type": self.page_type,
            "url": self.url,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "signal_count": self.signal_count,
            "confirmed_count": self.confirmed_count,
        }


@dataclass(frozen=True, slots=True)
class SubscriptionCandidate:
    """Best guess at one subscription. Emitted for every scan, even empty ones."""

    merchant_name: str | None = None
    amount: float | None = None
    currency: str = "USD"
    cycle: str | None = None  # monthly, yearly, weekly, quarterly, biannual, one-time, per-user
    category: str | None = None
    next_billing_date: date | None = None
    confidence: float = 0.0  # 0.0-1.0
    metadata: CandidateMetadata = field(default_factory=CandidateMetadata)

    @property
    def is_detected(self) -> bool:
        return self.merchant_name is not None or self.amount is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "merchant_name": self.merchant_name,
            "amount": self.amount,
            "currency": self.currency,
            "cycle": str(self.cycle) if self.cycle is not None else None,
            "category": self.category,
            "next_billing_date": self.next_billing_date.isoformat() if self.next_billing_date else None,
            "confidence": self.confidence,
            "metadata": self.metadata.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class EmailMetadata:
    """Identifiers lifted from a gateway email."""

    event_id: str | None = None
    invoice_id: str | None = None
    receipt_url: str | None = None
    customer_email: str | None = None
    transaction_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "invoice_id": self.invoice_id,
            "receipt_url": self.receipt_url,
            "customer_email": self.customer_email,
            "transaction_id": self.transaction_id,
        }


@dataclass(frozen=True, slots=True)
class EmailDetection:
    """Result of scanning one billing email."""

    gateway: str | None = None
    gateway_kind: str | None = None  # gateway, platform
    gateway_confidence: float = 0.0
    type: str = "receipt"  # receipt, invoice, subscription_update, payment_failed, trial_ending, refund, dispute
    status: str = "success"  # success, failed, pending, refunded, disputed
    merchant_name: str | None = None
    amount: float | None = None
    currency: str = "USD"
    billing_cycle: str | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    date: datetime | None = None
    confidence: float = 0.0
    metadata: EmailMetadata = field(default_factory=EmailMetadata)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gateway": self.gateway,
            "gateway_kind": self.gateway_kind,
            "gateway_confidence": self.gateway_confidence,
            "type": self.type,
            "status": self.status,
            "merchant_name": self.merchant_name,
            "amount": self.amount,
            "currency": self.currency,
            "billing_cycle": str(self.billing_cycle) if self.billing_cycle is not None else None,
            "subscription_id": self.subscription_id,
            "customer_id": self.customer_id,
            "date": self.date.isoformat() if self.date else None,
            "confidence": self.confidence,
            "metadata": self.metadata.to_dict(),
        }
