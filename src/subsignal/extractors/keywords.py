# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Subscription and cancellation vocabulary.

Each keyword family contributes at most one signal, carrying the first
matching phrase as its keyword.
"""

from __future__ import annotations

import re

from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.signals import CancellationIndicatorSignal, Signal, SignalSource, SubscriptionIndicatorSignal

SUBSCRIPTION_PATTERNS: tuple[tuple[re.Pattern[str], float], ...] = (
    (re.compile(r"\b(?:subscription|subscribe|sub)\b", re.I), 0.9),
    (re.compile(r"\b(?:recurring(?:\s+billing)?|auto.?renew(?:al|s|ed)?)\b", re.I), 0.9),
    (re.compile(r"\b(?:membership|member|plan)\b", re.I), 0.8),
    (re.compile(r"\b(?:service|tool|platform|software)\b", re.I), 0.6),
    (re.compile(r"\b(?:free\s*trial|trial|30.?day|7.?day)\b", re.I), 0.7),
)

CANCELLATION_PATTERNS: tuple[tuple[re.Pattern[str], float], ...] = (
    (re.compile(r"\b(?:cancel(?:lation|led)?|unsubscribe)\b", re.I), 0.8),
    (re.compile(r"\b(?:manage\s*(?:your\s+)?subscription|billing\s*portal)\b", re.I), 0.7),
    (re.compile(r"\b(?:account\s*settings|profile|preferences)\b", re.I), 0.6),
)


def has_subscription_keywords(text: str) -> bool:
    return bool(text) and any(regex.search(text) for regex, _ in SUBSCRIPTION_PATTERNS)


def extract_keywords(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    text = content.text
    if not text:
        return []
    signals: list[Signal] = []
    for regex, weight in SUBSCRIPTION_PATTERNS:
        if m := regex.search(text):
            signals.append(
                SubscriptionIndicatorSignal(base_confidence=weight, source=SignalSource.TEXT, keyword=m.group(0).lower())
            )
    for regex, weight in CANCELLATION_PATTERNS:
        if m := regex.search(text):
            signals.append(
                CancellationIndicatorSignal(base_confidence=weight, source=SignalSource.TEXT, keyword=m.group(0).lower())
            )
    return signals
