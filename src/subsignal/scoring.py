# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Fusion and scoring.

Per signal::

    score = base
          + boost * [subscription keywords] + boost * [pricing] + boost * [billing]
          + page_type_boost
          + corroboration * [same type seen from another source]

clamped to [0, 1]. The signal itself is never modified; its adjusted score
lives beside it in a ``ScoredSignal``. Overall document confidence is the
mean adjusted score plus a capped bonus per high-confidence signal.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass

from subsignal.config import PAGE_TYPE_BOOSTS, DetectorConfig
from subsignal.context import DocumentContext
from subsignal.signals import Signal, SignalSource, SignalType, clamp_confidence

# Float sums such as 0.7 + 0.1 land a hair below 0.8; scores are rounded
# before any threshold comparison.
_SCORE_DIGITS = 9


@dataclass(frozen=True, slots=True)
class ScoredSignal:
    signal: Signal
    score: float

    @property
    def type(self) -> SignalType:
        return self.signal.type


@dataclass(frozen=True, slots=True)
class ScoringResult:
    scored: tuple[ScoredSignal, ...]  # score descending, ties in extractor order
    confirmed: tuple[ScoredSignal, ...]  # score >= acceptance threshold
    overall: float

    @property
    def signal_count(self) -> int:
        return len(self.scored)


def context_boost(context: DocumentContext, config: DetectorConfig) -> float:
    """Boost shared by every signal in the document."""
    flags = (context.has_subscription_keywords, context.has_pricing_info, context.has_billing_info)
    return config.context_boost * sum(flags) + PAGE_TYPE_BOOSTS.get(context.page_type, 0.0)


def adjusted_score(signal: Signal, boost: float, corroborated: bool, config: DetectorConfig) -> float:
    score = signal.base_confidence + boost
    if corroborated:
        score += config.corroboration_boost
    return round(clamp_confidence(score), _SCORE_DIGITS)


def overall_confidence(scores: Sequence[float], config: DetectorConfig) -> float:
    if not scores:
        return 0.0
    mean = sum(scores) / len(scores)
    high = sum(1 for s in scores if s >= config.high_confidence_cutoff)
    bonus = min(config.high_confidence_bonus * high, config.high_confidence_bonus_cap)
    return round(clamp_confidence(mean + bonus), _SCORE_DIGITS)


def score_signals(signals: Sequence[Signal], context: DocumentContext, config: DetectorConfig) -> ScoringResult:
    sources: dict[SignalType, set[SignalSource]] = defaultdict(set)
    for signal in signals:
        sources[signal.type].add(signal.source)

    boost = context_boost(context, config)
    scored = [
        ScoredSignal(signal, adjusted_score(signal, boost, bool(sources[signal.type] - {signal.source}), config))
        for signal in signals
    ]
    # sorted() is stable: equal scores keep extractor order
    ranked = tuple(sorted(scored, key=lambda s: -s.score))
    return ScoringResult(
        scored=ranked,
        confirmed=tuple(s for s in ranked if s.score >= config.acceptance_threshold),
        overall=overall_confidence([s.score for s in ranked], config),
    )
