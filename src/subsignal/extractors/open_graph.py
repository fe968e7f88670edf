# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Open Graph site name and title."""

from __future__ import annotations

from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.sanitizer import clean_entity_name, sanitize_text
from subsignal.signals import OgSiteNameSignal, OgTitleSignal, Signal, SignalSource

OG_SITE_NAME_WEIGHT = 0.7
OG_TITLE_WEIGHT = 0.6


def extract_open_graph(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    signals: list[Signal] = []
    site_name = clean_entity_name(content.meta_tags.get("og:site_name", ""))
    if site_name:
        signals.append(
            OgSiteNameSignal(base_confidence=OG_SITE_NAME_WEIGHT, source=SignalSource.OPEN_GRAPH, name=site_name)
        )
    title = sanitize_text(content.meta_tags.get("og:title", ""))
    if title:
        signals.append(OgTitleSignal(base_confidence=OG_TITLE_WEIGHT, source=SignalSource.OPEN_GRAPH, title=title))
    return signals
