# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Signal types: one frozen dataclass per signal type.

A signal is one typed observation made by one detector from one source.
The ``type`` tag is a class-level constant, so ``signal.type`` works on any
variant and the union ``Signal`` can be narrowed with ``isinstance``.
``base_confidence`` is never mutated; scoring wraps signals in
``ScoredSignal`` instead (see :mod:`subsignal.scoring`).
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from enum import StrEnum
from typing import ClassVar


class SignalType(StrEnum):
    MERCHANT = "merchant"
    PRICE = "price"
    BILLING_CYCLE = "billing_cycle"
    SUBSCRIPTION_INDICATOR = "subscription_indicator"
    CANCELLATION_INDICATOR = "cancellation_indicator"
    RENEWAL_DATE = "renewal_date"
    STRUCTURED_PRICE = "structured_price"
    STRUCTURED_NAME = "structured_name"
    ORGANIZATION = "organization"
    MICRODATA_PRICE = "microdata_price"
    MICRODATA_NAME = "microdata_name"
    OG_SITE_NAME = "og_site_name"
    OG_TITLE = "og_title"
    BILLING_FORM = "billing_form"
    SUBSCRIPTION_FORM = "subscription_form"
    FORM_PRICE = "form_price"
    URL_MERCHANT = "url_merchant"
    URL_PATTERN = "url_pattern"


class SignalSource(StrEnum):
    TEXT = "text"
    HTML = "html"
    STRUCTURED_DATA = "structured_data"
    MICRODATA = "microdata"
    OPEN_GRAPH = "open_graph"
    FORM = "form"
    URL = "url"


class BillingCycle(StrEnum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    WEEKLY = "weekly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ONE_TIME = "one-time"
    PER_USER = "per-user"


def clamp_confidence(value: float) -> float:
    """Clamp a confidence into [0, 1]."""
    return max(0.0, min(1.0, value))


@dataclass(frozen=True, slots=True, kw_only=True)
class _SignalBase:
    type: ClassVar[SignalType]

    base_confidence: float
    source: SignalSource

    def __post_init__(self) -> None:
        if not 0.0 <= self.base_confidence <= 1.0:
            raise ValueError(f"base_confidence out of range: {self.base_confidence}")

    def payload(self) -> dict[str, object]:
        """Type-specific fields as a plain dict (for logs and serialization)."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("base_confidence", "source")
        }


# --- merchant identity ---


@dataclass(frozen=True, slots=True, kw_only=True)
class MerchantSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.MERCHANT

    merchant_name: str
    category: str


@dataclass(frozen=True, slots=True, kw_only=True)
class UrlMerchantSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.URL_MERCHANT

    merchant_name: str
    category: str


@dataclass(frozen=True, slots=True, kw_only=True)
class OrganizationSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.ORGANIZATION

    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class StructuredNameSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.STRUCTURED_NAME

    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class MicrodataNameSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.MICRODATA_NAME

    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class OgSiteNameSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.OG_SITE_NAME

    name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class OgTitleSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.OG_TITLE

    title: str


# --- amounts ---


@dataclass(frozen=True, slots=True, kw_only=True)
class _AmountSignal(_SignalBase):
    amount: float
    currency: str


@dataclass(frozen=True, slots=True, kw_only=True)
class PriceSignal(_AmountSignal):
    type: ClassVar[SignalType] = SignalType.PRICE


@dataclass(frozen=True, slots=True, kw_only=True)
class StructuredPriceSignal(_AmountSignal):
    type: ClassVar[SignalType] = SignalType.STRUCTURED_PRICE


@dataclass(frozen=True, slots=True, kw_only=True)
class MicrodataPriceSignal(_AmountSignal):
    type: ClassVar[SignalType] = SignalType.MICRODATA_PRICE


@dataclass(frozen=True, slots=True, kw_only=True)
class FormPriceSignal(_AmountSignal):
    type: ClassVar[SignalType] = SignalType.FORM_PRICE


# --- recurrence ---


@dataclass(frozen=True, slots=True, kw_only=True)
class BillingCycleSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.BILLING_CYCLE

    cycle: BillingCycle


@dataclass(frozen=True, slots=True, kw_only=True)
class RenewalDateSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.RENEWAL_DATE

    raw: str
    date: date | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class SubscriptionIndicatorSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.SUBSCRIPTION_INDICATOR

    keyword: str


@dataclass(frozen=True, slots=True, kw_only=True)
class CancellationIndicatorSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.CANCELLATION_INDICATOR

    keyword: str


# --- forms and URLs ---


@dataclass(frozen=True, slots=True, kw_only=True)
class BillingFormSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.BILLING_FORM

    field_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class SubscriptionFormSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.SUBSCRIPTION_FORM

    field_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class UrlPatternSignal(_SignalBase):
    type: ClassVar[SignalType] = SignalType.URL_PATTERN

    group: str


Signal = (
    MerchantSignal
    | UrlMerchantSignal
    | OrganizationSignal
    | StructuredNameSignal
    | MicrodataNameSignal
    | OgSiteNameSignal
    | OgTitleSignal
    | PriceSignal
    | StructuredPriceSignal
    | MicrodataPriceSignal
    | FormPriceSignal
    | BillingCycleSignal
    | RenewalDateSignal
    | SubscriptionIndicatorSignal
    | CancellationIndicatorSignal
    | BillingFormSignal
    | SubscriptionFormSignal
    | UrlPatternSignal
)

# Every SignalType has exactly one variant.
SIGNAL_CLASSES: dict[SignalType, type] = {
    cls.type: cls
    for cls in (
        MerchantSignal,
        UrlMerchantSignal,
        OrganizationSignal,
        StructuredNameSignal,
        MicrodataNameSignal,
        OgSiteNameSignal,
        OgTitleSignal,
        PriceSignal,
        StructuredPriceSignal,
        MicrodataPriceSignal,
        FormPriceSignal,
        BillingCycleSignal,
        RenewalDateSignal,
        SubscriptionIndicatorSignal,
        CancellationIndicatorSignal,
        BillingFormSignal,
        SubscriptionFormSignal,
        UrlPatternSignal,
    )
}
