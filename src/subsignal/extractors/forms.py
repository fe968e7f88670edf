# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Form field scanning.

Per form: one ``billing_form`` signal when any field looks like card or
billing input, one ``subscription_form`` signal when any field selects a
plan or tier, and one ``form_price`` per distinct ``$`` amount shown in a
field value or placeholder.
"""

from __future__ import annotations

import re

from subsignal.amounts import parse_amount, resolve_currency
from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import FormField, NormalizedContent
from subsignal.signals import (
    BillingFormSignal,
    FormPriceSignal,
    Signal,
    SignalSource,
    SubscriptionFormSignal,
)

BILLING_FIELD_RE = re.compile(r"billing|card|payment|cc[-_]?(?:number|num|exp|cvc|cvv)", re.I)
SUBSCRIPTION_FIELD_RE = re.compile(r"subscription|plan|tier", re.I)
FORM_PRICE_RE = re.compile(r"\$\s?(\d{1,3}(?:,\d{3})+(?:\.\d{1,2})?|\d+(?:\.\d{1,2})?)")

BILLING_FORM_WEIGHT = 0.8
SUBSCRIPTION_FORM_WEIGHT = 0.8
FORM_PRICE_WEIGHT = 0.7


def _matching_fields(fields: list[FormField], regex: re.Pattern[str]) -> tuple[str, ...]:
    names: list[str] = []
    for f in fields:
        if any(regex.search(t) for t in f.texts()):
            names.append(f.name or f.placeholder or f.label or f.type)
    return tuple(names)


def extract_forms(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    ceiling = env.amount_ceiling(content.mode)
    currency = resolve_currency("$", content.url, default=env.config.default_currency)
    signals: list[Signal] = []
    for form in content.forms:
        billing = _matching_fields(form.fields, BILLING_FIELD_RE)
        if billing:
            signals.append(
                BillingFormSignal(base_confidence=BILLING_FORM_WEIGHT, source=SignalSource.FORM, field_names=billing)
            )
        plans = _matching_fields(form.fields, SUBSCRIPTION_FIELD_RE)
        if plans:
            signals.append(
                SubscriptionFormSignal(
                    base_confidence=SUBSCRIPTION_FORM_WEIGHT, source=SignalSource.FORM, field_names=plans
                )
            )

        seen: set[float] = set()
        for f in form.fields:
            for text in (f.value, f.placeholder, f.label):
                m = FORM_PRICE_RE.search(text) if text else None
                amount = parse_amount(m.group(1)) if m else None
                if amount is None or amount <= 0 or amount > ceiling or amount in seen:
                    continue
                seen.add(amount)
                signals.append(
                    FormPriceSignal(
                        base_confidence=FORM_PRICE_WEIGHT, source=SignalSource.FORM, amount=amount, currency=currency
                    )
                )
    return signals
