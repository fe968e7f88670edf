# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for signal fusion and scoring."""

from __future__ import annotations

import pytest

from subsignal.config import DetectorConfig
from subsignal.context import DocumentContext, PageType
from subsignal.scoring import adjusted_score, context_boost, overall_confidence, score_signals
from subsignal.signals import (
    BillingCycle,
    BillingCycleSignal,
    MerchantSignal,
    PriceSignal,
    SignalSource,
    StructuredPriceSignal,
)

CFG = DetectorConfig()
BARE = DocumentContext()


def _price(conf: float, source: SignalSource = SignalSource.TEXT, amount: float = 10.0) -> PriceSignal:
    return PriceSignal(base_confidence=conf, source=source, amount=amount, currency="USD")


def _cycle(conf: float, source: SignalSource = SignalSource.TEXT) -> BillingCycleSignal:
    return BillingCycleSignal(base_confidence=conf, source=source, cycle=BillingCycle.MONTHLY)


class TestContextBoost:
    def test_none(self):
        assert context_boost(BARE, CFG) == 0.0

    @pytest.mark.parametrize(
        "page_type,boost",
        [
            (PageType.BILLING, 0.2),
            (PageType.PRICING, 0.2),
            (PageType.SIGNUP, 0.15),
            (PageType.DASHBOARD, 0.1),
            (PageType.GENERAL, 0.0),
        ],
    )
    def test_page_type(self, page_type, boost):
        assert context_boost(DocumentContext(page_type=page_type), CFG) == pytest.approx(boost)

    def test_flags_add_up(self):
        ctx = DocumentContext(has_subscription_keywords=True, has_pricing_info=True, has_billing_info=True)
        assert context_boost(ctx, CFG) == pytest.approx(0.3)


class TestAdjustedScore:
    def test_threshold_examples(self):
        assert adjusted_score(_price(0.9), 0.0, False, CFG) >= CFG.acceptance_threshold
        assert adjusted_score(_price(0.5), 0.0, False, CFG) < CFG.acceptance_threshold

    def test_corroboration(self):
        assert adjusted_score(_price(0.6), 0.0, True, CFG) == 0.7

    def test_clamped(self):
        assert adjusted_score(_price(0.95), 0.5, True, CFG) == 1.0

    def test_float_noise_rounded(self):
        # 0.7 + 0.1 is 0.7999999999999999 in binary floating point
        assert adjusted_score(_price(0.7), 0.1, False, CFG) == 0.8


class TestOverallConfidence:
    def test_empty(self):
        assert overall_confidence([], CFG) == 0.0

    def test_mean_without_bonus(self):
        assert overall_confidence([0.6, 0.7], CFG) == 0.65

    def test_bonus_per_high_signal(self):
        # mean 0.6, two signals >= 0.8
        assert overall_confidence([0.8, 0.8, 0.2], CFG) == 0.7

    def test_bonus_capped(self):
        # 10 high signals would give 0.5; capped at 0.2, then clamped
        assert overall_confidence([0.8] * 10, CFG) == 1.0
        assert overall_confidence([0.8] * 5 + [0.0] * 5, CFG) == 0.6


class TestScoreSignals:
    def test_no_signals(self):
        result = score_signals([], BARE, CFG)
        assert result.scored == ()
        assert result.confirmed == ()
        assert result.overall == 0.0
        assert result.signal_count == 0

    def test_sorted_and_confirmed(self):
        result = score_signals([_cycle(0.6), _price(0.9)], BARE, CFG)
        assert [s.score for s in result.scored] == [0.9, 0.6]
        assert [s.signal for s in result.confirmed] == [_price(0.9)]

    def test_ties_keep_extractor_order(self):
        a = MerchantSignal(base_confidence=0.9, source=SignalSource.TEXT, merchant_name="A", category="x")
        b = MerchantSignal(base_confidence=0.9, source=SignalSource.TEXT, merchant_name="B", category="x")
        result = score_signals([a, b], BARE, CFG)
        assert [s.signal.merchant_name for s in result.scored] == ["A", "B"]

    def test_signals_not_mutated(self):
        sig = _price(0.6)
        score_signals([sig], DocumentContext(page_type=PageType.BILLING), CFG)
        assert sig.base_confidence == 0.6

    def test_corroboration_needs_another_source(self):
        same = score_signals([_price(0.6), _price(0.6, amount=11.0)], BARE, CFG)
        assert {s.score for s in same.scored} == {0.6}
        other = score_signals([_price(0.6), _price(0.6, SignalSource.URL, 11.0)], BARE, CFG)
        assert {s.score for s in other.scored} == {0.7}

    def test_corroboration_is_per_type(self):
        structured = StructuredPriceSignal(
            base_confidence=0.6, source=SignalSource.STRUCTURED_DATA, amount=10.0, currency="USD"
        )
        result = score_signals([_price(0.6), structured], BARE, CFG)
        assert {s.score for s in result.scored} == {0.6}

    def test_context_lifts_weak_signal(self):
        ctx = DocumentContext(has_subscription_keywords=True, page_type=PageType.PRICING)
        result = score_signals([_cycle(0.5)], ctx, CFG)
        assert result.scored[0].score == 0.8
        assert len(result.confirmed) == 1

    def test_custom_threshold(self):
        strict = DetectorConfig(acceptance_threshold=0.95)
        assert score_signals([_price(0.9)], BARE, strict).confirmed == ()
