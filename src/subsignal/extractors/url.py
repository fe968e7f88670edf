# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""URL matching: merchant domains and subscription-flow path keywords."""

from __future__ import annotations

import re
from urllib.parse import urlparse

from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.signals import Signal, SignalSource, UrlMerchantSignal, UrlPatternSignal

URL_MERCHANT_WEIGHT = 0.9

# (group name, pattern, weight)
URL_PATTERNS: tuple[tuple[str, re.Pattern[str], float], ...] = (
    ("billing", re.compile(r"billing|subscription|account|pricing|plans"), 0.7),
    ("checkout", re.compile(r"checkout|payment|subscribe|signup"), 0.8),
    ("trial", re.compile(r"trial|free"), 0.6),
)


def url_host(url: str) -> str:
    if not url:
        return ""
    return (urlparse(url if "//" in url else f"//{url}").hostname or "").lower()


def extract_url(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    if not content.url:
        return []
    signals: list[Signal] = []

    host = url_host(content.url)
    if host:
        for entry in env.knowledge_base.merchants:
            if entry.owns_host(host):
                signals.append(
                    UrlMerchantSignal(
                        base_confidence=URL_MERCHANT_WEIGHT,
                        source=SignalSource.URL,
                        merchant_name=entry.canonical_name,
                        category=entry.category,
                    )
                )

    url = content.url.lower()
    for group, regex, weight in URL_PATTERNS:
        if regex.search(url):
            signals.append(UrlPatternSignal(base_confidence=weight, source=SignalSource.URL, group=group))
    return signals
