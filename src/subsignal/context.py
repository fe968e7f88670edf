# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""DocumentContext: document-level flags that only adjust scores.

Leaf module; built fresh per detection call and never persisted.
"""

from __future__ import annotations

import dataclasses
from enum import StrEnum

from subsignal.extractors.keywords import has_subscription_keywords
from subsignal.extractors.price import has_pricing_info
from subsignal.normalizer import NormalizedContent


class PageType(StrEnum):
    BILLING = "billing"
    PRICING = "pricing"
    SIGNUP = "signup"
    DASHBOARD = "dashboard"
    GENERAL = "general"


# Priority order; the first type with a matching substring wins.
PAGE_TYPE_RULES: tuple[tuple[PageType, tuple[str, ...]], ...] = (
    (PageType.BILLING, ("billing", "account", "subscription")),
    (PageType.PRICING, ("pricing", "plans", "checkout")),
    (PageType.SIGNUP, ("trial", "signup", "register")),
    (PageType.DASHBOARD, ("dashboard", "home", "main")),
)

BILLING_TERMS: tuple[str, ...] = ("billing", "payment", "renewal")


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class DocumentContext:
    has_subscription_keywords: bool = False
    has_pricing_info: bool = False
    has_billing_info: bool = False
    page_type: PageType = PageType.GENERAL


def _match_page_type(value: str) -> PageType | None:
    value = value.lower()
    for page_type, needles in PAGE_TYPE_RULES:
        if any(n in value for n in needles):
            return page_type
    return None


def classify_page_type(url: str, title: str = "") -> PageType:
    """URL first, then title, against the fixed priority list."""
    return _match_page_type(url or "") or _match_page_type(title or "") or PageType.GENERAL


def build_context(content: NormalizedContent) -> DocumentContext:
    text = content.text or ""
    lowered = text.lower()
    return DocumentContext(
        has_subscription_keywords=has_subscription_keywords(text),
        has_pricing_info=has_pricing_info(text),
        has_billing_info=any(term in lowered for term in BILLING_TERMS),
        page_type=classify_page_type(content.url, content.title),
    )
