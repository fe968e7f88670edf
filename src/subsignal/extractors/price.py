# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Price extraction from free text.

Patterns are tried in order; the first pattern to yield a given amount
decides that amount's weight and currency. Amounts that are not positive or
exceed the scan's sanity ceiling are dropped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from subsignal.amounts import parse_amount, resolve_currency
from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent, ScanMode
from subsignal.signals import PriceSignal, Signal, SignalSource

# "1,299.00" | "15.99" | "9,99" | "49"
_AMT = r"\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:[.,]\d{1,2})?"
_SYM = r"CAD\s*\$|AUD\s*\$|CA\$|A\$|US\$|[$€£¥₹]"


@dataclass(frozen=True, slots=True)
class PricePattern:
    name: str
    regex: re.Pattern[str]
    weight: float


@dataclass(frozen=True, slots=True)
class AmountMatch:
    amount: float
    currency: str
    weight: float
    pattern: str


PAGE_PATTERNS: tuple[PricePattern, ...] = (
    PricePattern("currency_prefixed", re.compile(rf"(?P<cur>{_SYM})\s?(?P<amt>{_AMT})", re.I), 0.9),
    PricePattern(
        "currency_suffixed",
        re.compile(rf"(?<![\d.,])(?P<amt>{_AMT})\s*(?P<cur>USD|EUR|GBP|CAD|AUD|dollars?|bucks?|euros?)\b", re.I),
        0.8,
    ),
    PricePattern(
        "labeled",
        re.compile(rf"\b(?:price|cost|billing)\b[:\s]*(?P<cur>{_SYM})?\s?(?P<amt>{_AMT})", re.I),
        0.9,
    ),
    PricePattern(
        "ranged",
        re.compile(rf"(?P<cur>{_SYM})\s?(?P<amt>{_AMT})\s*[-–—]\s*(?:{_SYM})?\s?(?P<amt2>{_AMT})", re.I),
        0.8,
    ),
    PricePattern(
        "starting_at",
        re.compile(rf"\bstarting\s+(?:at|from)\s+(?P<cur>{_SYM})?\s?(?P<amt>{_AMT})", re.I),
        0.8,
    ),
    PricePattern(
        "per_user",
        re.compile(rf"(?P<cur>{_SYM})?\s?(?P<amt>{_AMT})\s*(?:/|per)\s*(?:user|seat|member)\b", re.I),
        0.8,
    ),
    PricePattern(
        "annualized",
        re.compile(rf"(?P<cur>{_SYM})\s?(?P<amt>{_AMT})\s*(?:/\s*(?:year|yr)\b|per\s+year\b|annually\b)", re.I),
        0.8,
    ),
)

EMAIL_PATTERNS: tuple[PricePattern, ...] = (
    *PAGE_PATTERNS,
    PricePattern(
        "email_labeled",
        re.compile(
            rf"\b(?:amount(?:\s+(?:paid|due|charged))?|total|charged|payment)\b[:\s]*(?P<cur>{_SYM})?\s?(?P<amt>{_AMT})",
            re.I,
        ),
        0.9,
    ),
)


def find_amounts(
    text: str,
    *,
    mode: ScanMode = ScanMode.PAGE,
    ceiling: float,
    url: str = "",
    default_currency: str = "USD",
) -> list[AmountMatch]:
    """Every distinct plausible amount in ``text``, in pattern order."""
    if not text:
        return []
    patterns = EMAIL_PATTERNS if mode is ScanMode.EMAIL else PAGE_PATTERNS
    seen: set[float] = set()
    found: list[AmountMatch] = []
    for pattern in patterns:
        for m in pattern.regex.finditer(text):
            groups = m.groupdict()
            currency = resolve_currency(groups.get("cur"), url, default_currency)
            for key in ("amt", "amt2"):
                amount = parse_amount(groups.get(key))
                if amount is None or amount <= 0 or amount > ceiling or amount in seen:
                    continue
                seen.add(amount)
                found.append(AmountMatch(amount, currency, pattern.weight, pattern.name))
    return found


def has_pricing_info(text: str) -> bool:
    """True when any page price pattern occurs in ``text``."""
    return bool(text) and any(p.regex.search(text) for p in PAGE_PATTERNS)


def extract_prices(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    matches = find_amounts(
        content.text,
        mode=content.mode,
        ceiling=env.amount_ceiling(content.mode),
        url=content.url,
        default_currency=env.config.default_currency,
    )
    return [
        PriceSignal(base_confidence=m.weight, source=SignalSource.TEXT, amount=m.amount, currency=m.currency)
        for m in matches
    ]
