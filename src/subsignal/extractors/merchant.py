# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Known-merchant matching against page text and the URL.

Every merchant entry is tried; several merchants may match the same page.
A merchant found in both the text and the URL yields two signals, one per
source, so the scorer can credit the corroboration.
"""

from __future__ import annotations

from urllib.parse import unquote

from subsignal.extractors.base import ScanEnv
from subsignal.knowledge_base import MerchantEntry
from subsignal.normalizer import NormalizedContent
from subsignal.signals import MerchantSignal, Signal, SignalSource


def _signal(entry: MerchantEntry, source: SignalSource) -> MerchantSignal:
    return MerchantSignal(
        base_confidence=entry.base_confidence,
        source=source,
        merchant_name=entry.canonical_name,
        category=entry.category,
    )


def match_merchants(text: str, merchants: tuple[MerchantEntry, ...]) -> list[MerchantEntry]:
    """Entries whose patterns occur in ``text``, in table order."""
    if not text:
        return []
    return [entry for entry in merchants if entry.matches(text)]


def extract_merchants(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    merchants = env.knowledge_base.merchants
    text = "\n".join(t for t in (content.title, content.text) if t)
    url = unquote(content.url)

    signals: list[Signal] = [_signal(e, SignalSource.TEXT) for e in match_merchants(text, merchants)]
    signals.extend(_signal(e, SignalSource.URL) for e in match_merchants(url, merchants))
    return signals
