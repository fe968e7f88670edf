# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Candidate assembly: pick the winning confirmed signal per output field."""

from __future__ import annotations

from datetime import datetime
from typing import TypeVar

from subsignal import CandidateMetadata, SubscriptionCandidate
from subsignal.context import DocumentContext
from subsignal.scoring import ScoredSignal, ScoringResult
from subsignal.signals import (
    BillingCycleSignal,
    MerchantSignal,
    OrganizationSignal,
    PriceSignal,
    RenewalDateSignal,
    StructuredPriceSignal,
)

_S = TypeVar("_S")


def _first(confirmed: tuple[ScoredSignal, ...], *kinds: type[_S]) -> _S | None:
    for scored in confirmed:
        if isinstance(scored.signal, kinds):
            return scored.signal  # type: ignore[return-value]
    return None


def assemble_candidate(
    result: ScoringResult,
    context: DocumentContext,
    *,
    url: str = "",
    timestamp: datetime | None = None,
    default_currency: str = "USD",
) -> SubscriptionCandidate:
    """Fill each field from the highest-ranked confirmed signal that can supply it."""
    confirmed = result.confirmed

    merchant_name: str | None = None
    category: str | None = None
    merchant = _first(confirmed, MerchantSignal)
    if merchant is not None:
        merchant_name, category = merchant.merchant_name, merchant.category
    else:
        organization = _first(confirmed, OrganizationSignal)
        if organization is not None:
            merchant_name = organization.name

    amount: float | None = None
    currency = default_currency
    price = _first(confirmed, PriceSignal, StructuredPriceSignal)
    if price is not None:
        amount, currency = price.amount, price.currency

    cycle = _first(confirmed, BillingCycleSignal)

    next_billing = None
    for scored in confirmed:
        if isinstance(scored.signal, RenewalDateSignal) and scored.signal.date is not None:
            next_billing = scored.signal.date
            break

    return SubscriptionCandidate(
        merchant_name=merchant_name,
        amount=amount,
        currency=currency,
        cycle=str(cycle.cycle) if cycle is not None else None,
        category=category,
        next_billing_date=next_billing,
        confidence=result.overall,
        metadata=CandidateMetadata(
            page_type=str(context.page_type),
            url=url,
            timestamp=timestamp,
            signal_count=result.signal_count,
            confirmed_count=len(confirmed),
        ),
    )


def empty_candidate(
    *, url: str = "", timestamp: datetime | None = None, default_currency: str = "USD", page_type: str = "general"
) -> SubscriptionCandidate:
    """The zero-confidence candidate for input with nothing to scan."""
    return SubscriptionCandidate(
        currency=default_currency,
        metadata=CandidateMetadata(page_type=page_type, url=url, timestamp=timestamp),
    )
