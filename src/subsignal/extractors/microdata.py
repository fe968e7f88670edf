# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Microdata items (elements carrying ``itemtype``): price and name properties."""

from __future__ import annotations

from subsignal.amounts import currency_from_marker, infer_currency, normalize_currency_code, parse_amount
from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.sanitizer import clean_entity_name
from subsignal.signals import MicrodataNameSignal, MicrodataPriceSignal, Signal, SignalSource

MICRODATA_PRICE_WEIGHT = 0.8
MICRODATA_NAME_WEIGHT = 0.7


def extract_microdata(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    site_currency = infer_currency(content.url, default=env.config.default_currency)
    ceiling = env.amount_ceiling(content.mode)
    signals: list[Signal] = []
    seen_prices: set[float] = set()
    seen_names: set[str] = set()

    for item in content.microdata:
        amount = parse_amount(item.price) if item.price else None
        if amount is not None and 0 < amount <= ceiling and amount not in seen_prices:
            seen_prices.add(amount)
            if item.currency:
                currency = normalize_currency_code(item.currency, default=site_currency)
            else:
                currency = currency_from_marker(item.price) or site_currency
            signals.append(
                MicrodataPriceSignal(
                    base_confidence=MICRODATA_PRICE_WEIGHT,
                    source=SignalSource.MICRODATA,
                    amount=amount,
                    currency=currency,
                )
            )

        name = clean_entity_name(item.name)
        if name and name not in seen_names:
            seen_names.add(name)
            signals.append(
                MicrodataNameSignal(base_confidence=MICRODATA_NAME_WEIGHT, source=SignalSource.MICRODATA, name=name)
            )
    return signals
