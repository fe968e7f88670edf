# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Billing-cycle vocabulary. Every family that occurs emits one signal."""

from __future__ import annotations

import re

from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.signals import BillingCycle, BillingCycleSignal, Signal, SignalSource

CYCLE_PATTERNS: tuple[tuple[BillingCycle, re.Pattern[str], float], ...] = (
    (BillingCycle.MONTHLY, re.compile(r"\b(?:monthly|month|mo\.?)(?!\w)", re.I), 0.8),
    (BillingCycle.YEARLY, re.compile(r"\b(?:yearly|annual(?:ly)?|year|yr\.?)(?!\w)", re.I), 0.8),
    (BillingCycle.WEEKLY, re.compile(r"\b(?:weekly|week|wk\.?)(?!\w)", re.I), 0.7),
    (BillingCycle.QUARTERLY, re.compile(r"\b(?:quarterly|quarter|qtr\.?)(?!\w)", re.I), 0.7),
    (BillingCycle.BIANNUAL, re.compile(r"\b(?:bi.?annual(?:ly)?|semi.?annual(?:ly)?|6.?months?)\b", re.I), 0.6),
    (BillingCycle.ONE_TIME, re.compile(r"\b(?:one.?time|single\s+payment|pay\s+once)\b", re.I), 0.6),
    (BillingCycle.PER_USER, re.compile(r"\bper\s*(?:user|seat)\b", re.I), 0.6),
)


def detect_cycles(text: str) -> list[tuple[BillingCycle, float]]:
    """Cycle families present in ``text``, in table order."""
    if not text:
        return []
    return [(cycle, weight) for cycle, regex, weight in CYCLE_PATTERNS if regex.search(text)]


def extract_billing_cycles(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    return [
        BillingCycleSignal(base_confidence=weight, source=SignalSource.TEXT, cycle=cycle)
        for cycle, weight in detect_cycles(content.text)
    ]
