# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""JSON-LD parsing.

Each ``application/ld+json`` block is parsed on its own and walked depth
first. The walk is bounded by ``max_structured_depth`` and keeps a visited
set, so pathological or self-referencing documents terminate. A block that
does not parse is skipped without affecting the others.

Emits:
  structured_price  Product/Service/Offer nodes with a price (direct or via offers)
  structured_name   names of Product/Service nodes
  organization      Organization nodes anywhere (brand/seller/provider included)
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from subsignal.amounts import infer_currency, normalize_currency_code, parse_amount
from subsignal.errors import MalformedFragmentError
from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.sanitizer import clean_entity_name
from subsignal.signals import (
    OrganizationSignal,
    Signal,
    SignalSource,
    StructuredNameSignal,
    StructuredPriceSignal,
)

logger = logging.getLogger(__name__)

_PRODUCT_TYPES = frozenset(
    {"Product", "IndividualProduct", "ProductModel", "Service", "SoftwareApplication", "WebApplication"}
)
_OFFER_TYPES = frozenset({"Offer", "AggregateOffer"})
_ORGANIZATION_TYPES = frozenset({"Organization", "Corporation", "OnlineBusiness", "OnlineStore"})

STRUCTURED_PRICE_WEIGHT = 0.9
STRUCTURED_NAME_WEIGHT = 0.8
ORGANIZATION_WEIGHT = 0.7


def _types(node: dict[str, Any]) -> set[str]:
    """``@type`` as a set of short names ("schema:Product" / full IRIs included)."""
    raw = node.get("@type", "")
    values = raw if isinstance(raw, list) else [raw]
    return {str(v).rsplit("/", 1)[-1].rsplit(":", 1)[-1] for v in values if v}


def _price_from_node(node: dict[str, Any]) -> tuple[float | None, str | None]:
    """Price and currency carried directly by a node (Offer polymorphism included)."""
    types = _types(node)
    price: float | None = None
    if "AggregateOffer" in types:
        low = node.get("lowPrice")
        price = parse_amount(low if low is not None else node.get("price"))
    else:
        price = parse_amount(node.get("price"))

    currency = node.get("priceCurrency")
    spec = node.get("priceSpecification")
    if isinstance(spec, list):
        spec = spec[0] if spec else None
    if price is None and isinstance(spec, dict):
        price = parse_amount(spec.get("price"))
        currency = currency or spec.get("priceCurrency")
    return price, (str(currency) if currency else None)


def _price_from_offers(offers: Any) -> tuple[float | None, str | None]:
    """Handle offers polymorphism: Offer, [Offer], AggregateOffer."""
    if isinstance(offers, list):
        offers = offers[0] if offers else {}
    if not isinstance(offers, dict):
        return None, None
    return _price_from_node(offers)


class _Walker:
    def __init__(self, max_depth: int, currency: str, ceiling: float) -> None:
        self.max_depth = max_depth
        self.currency = currency
        self.ceiling = ceiling
        self.visited: set[int] = set()
        self.signals: list[Signal] = []
        self.truncated = False

    def _price(self, amount: float | None, currency: str | None) -> None:
        if amount is None or amount <= 0 or amount > self.ceiling:
            return
        self.signals.append(
            StructuredPriceSignal(
                base_confidence=STRUCTURED_PRICE_WEIGHT,
                source=SignalSource.STRUCTURED_DATA,
                amount=amount,
                currency=normalize_currency_code(currency, default=self.currency),
            )
        )

    def _name(self, value: Any, organization: bool) -> None:
        if not isinstance(value, str):
            return
        name = clean_entity_name(value)
        if not name:
            return
        if organization:
            signal: Signal = OrganizationSignal(
                base_confidence=ORGANIZATION_WEIGHT, source=SignalSource.STRUCTURED_DATA, name=name
            )
        else:
            signal = StructuredNameSignal(
                base_confidence=STRUCTURED_NAME_WEIGHT, source=SignalSource.STRUCTURED_DATA, name=name
            )
        self.signals.append(signal)

    def visit(self, data: Any, depth: int = 0) -> None:
        if not isinstance(data, (dict, list)):
            return
        if depth >= self.max_depth:
            self.truncated = True
            return
        if id(data) in self.visited:
            return
        self.visited.add(id(data))

        if isinstance(data, list):
            for item in data:
                self.visit(item, depth + 1)
            return

        types = _types(data)
        if types & _PRODUCT_TYPES:
            price, currency = _price_from_node(data)
            if price is None:
                price, currency = _price_from_offers(data.get("offers"))
            self._price(price, currency)
            self._name(data.get("name"), organization=False)
        elif types & _OFFER_TYPES:
            self._price(*_price_from_node(data))
        if types & _ORGANIZATION_TYPES:
            self._name(data.get("name"), organization=True)

        for key, value in data.items():
            if key == "@context":
                continue
            self.visit(value, depth + 1)


def parse_block(
    block: str, *, index: int, max_depth: int, currency: str, ceiling: float = math.inf
) -> list[Signal]:
    """Signals from one JSON-LD block; raises MalformedFragmentError if it does not parse."""
    try:
        data = json.loads(block)
    except (ValueError, TypeError) as exc:
        raise MalformedFragmentError(f"JSON-LD block {index} is not valid JSON: {exc}", fragment_index=index) from exc
    if not isinstance(data, (dict, list)):
        raise MalformedFragmentError(f"JSON-LD block {index} is not an object or array", fragment_index=index)

    walker = _Walker(max_depth, currency, ceiling)
    walker.visit(data)
    if walker.truncated:
        logger.debug("JSON-LD block %d deeper than %d levels, walk truncated", index, max_depth)
    return _dedupe(walker.signals)


def _dedupe(signals: list[Signal]) -> list[Signal]:
    seen: set[tuple[object, ...]] = set()
    unique: list[Signal] = []
    for signal in signals:
        key = (signal.type, *signal.payload().values())
        if key in seen:
            continue
        seen.add(key)
        unique.append(signal)
    return unique


def extract_structured_data(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    currency = infer_currency(content.url, default=env.config.default_currency)
    ceiling = env.amount_ceiling(content.mode)
    signals: list[Signal] = []
    for index, block in enumerate(content.json_ld):
        try:
            signals.extend(
                parse_block(
                    block,
                    index=index,
                    max_depth=env.config.max_structured_depth,
                    currency=currency,
                    ceiling=ceiling,
                )
            )
        except MalformedFragmentError as exc:
            logger.debug("Skipping structured block: %s", exc)
    return _dedupe(signals)
