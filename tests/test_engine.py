# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""End-to-end tests for SubscriptionDetector."""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, date, datetime

import pytest
import structlog

from subsignal import EmailDetection
from subsignal.engine import SubscriptionDetector
from subsignal.extractors import EXTRACTORS, ExtractorDef
from subsignal.normalizer import NormalizedContent, PageSnapshot, ParsedEmailContent

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

NETFLIX_BILLING = {
    "text": "Monthly plan $15.99 - Netflix subscription, billing portal, cancel anytime",
    "url": "https://www.netflix.com/billing",
}

SPOTIFY_MARKUP = (
    "<html><head>"
    '<script type="application/ld+json">{not json at all</script>'
    "</head><body><p>Spotify Premium $9.99/month. Cancel anytime.</p></body></html>"
)

RAW_STRIPE_RECEIPT = (
    b"From: Stripe <receipts@stripe.com>\r\n"
    b"To: jane@example.com\r\n"
    b"Subject: Your receipt from Acme Co\r\n"
    b"Date: Thu, 15 Jan 2026 10:00:00 +0000\r\n"
    b"Content-Type: text/plain; charset=utf-8\r\n"
    b"\r\n"
    b"Amount paid $49.00\r\n"
    b"Invoice in_1QwErTy\r\n"
)


def _boom(content, env):
    raise RuntimeError("extractor exploded")


def _ld(body: str) -> str:
    return f'<script type="application/ld+json">{body}</script>'


class TestDetectPage:
    def test_billing_page(self, detector):
        candidate = detector.detect_page(NETFLIX_BILLING)
        assert candidate.merchant_name == "Netflix"
        assert candidate.category == "Entertainment"
        assert candidate.amount == 15.99
        assert candidate.currency == "USD"
        assert candidate.cycle == "monthly"
        assert candidate.confidence >= 0.9
        assert candidate.is_detected
        assert candidate.metadata.page_type == "billing"
        assert candidate.metadata.url == "https://www.netflix.com/billing"
        assert candidate.metadata.timestamp == FIXED_NOW

    def test_empty_snapshot(self, detector):
        candidate = detector.detect_page({})
        assert candidate.merchant_name is None
        assert candidate.amount is None
        assert candidate.cycle is None
        assert candidate.confidence == 0.0
        assert not candidate.is_detected
        assert candidate.metadata.signal_count == 0

    def test_malformed_structured_data_ignored(self, detector):
        candidate = detector.detect_page({"markup": SPOTIFY_MARKUP, "url": "https://open.spotify.com/premium"})
        assert candidate.merchant_name == "Spotify"
        assert candidate.amount == 9.99
        assert candidate.cycle == "monthly"
        assert candidate.confidence > 0.0

    def test_accepts_snapshot_model(self, detector):
        snapshot = PageSnapshot(**NETFLIX_BILLING)
        assert detector.detect_page(snapshot) == detector.detect_page(NETFLIX_BILLING)

    def test_html_alias(self, detector):
        candidate = detector.detect_page({"html": "<p>Spotify Premium $9.99/month</p>"})
        assert candidate.merchant_name == "Spotify"

    def test_renewal_date(self, detector):
        candidate = detector.detect_page(
            {"text": "Your Spotify subscription renews on 2026-03-01 for $9.99 per month."}
        )
        assert candidate.next_billing_date == date(2026, 3, 1)

    def test_unusable_snapshot_degrades(self, detector, caplog):
        with caplog.at_level(logging.WARNING, logger="subsignal.engine"):
            candidate = detector.detect_page({"url": "https://x.test/account", "forms": "not a list"})
        assert candidate.confidence == 0.0
        assert candidate.metadata.url == "https://x.test/account"
        assert "Unusable page snapshot" in caplog.text

    def test_deterministic(self, detector):
        assert detector.detect_page(NETFLIX_BILLING) == detector.detect_page(NETFLIX_BILLING)

    @pytest.mark.parametrize("price", ["NaN", "Infinity", "-Infinity", "1e999", '"' + "9" * 400 + '"'])
    def test_non_finite_structured_price_ignored(self, detector, price):
        markup = _ld(f'{{"@type":"Product","name":"Acme Pro","price":{price}}}') + "<p>Acme Pro plan</p>"
        candidate = detector.detect_page({"markup": markup, "url": "https://acme.test/billing"})
        assert candidate.amount is None
        json.dumps(candidate.to_dict(), allow_nan=False)

    @pytest.mark.parametrize(
        "markup",
        [
            _ld('{"@type":"Offer","price":"99999999"}'),
            _ld('{"@type":"Product","name":"Acme","priceSpecification":{"price":99999999}}'),
            '<div itemscope itemtype="https://schema.org/Offer"><span itemprop="price">99999999</span></div>',
        ],
        ids=["json-ld-offer", "json-ld-price-spec", "microdata"],
    )
    def test_markup_price_over_ceiling_ignored(self, detector, markup):
        page = {"markup": markup + "<p>Manage your subscription</p>", "url": "https://acme.test/billing"}
        assert detector.detect_page(page).amount is None

    def test_failing_extractor_isolated(self, kb, config, detector):
        flaky = SubscriptionDetector(
            kb, config, clock=lambda: FIXED_NOW, extractors=(ExtractorDef("boom", _boom), *EXTRACTORS)
        )
        assert flaky.detect_page(NETFLIX_BILLING) == detector.detect_page(NETFLIX_BILLING)

    def test_executor_gives_same_answer(self, kb, config, detector):
        with ThreadPoolExecutor(max_workers=4) as pool:
            concurrent = SubscriptionDetector(kb, config, clock=lambda: FIXED_NOW, executor=pool)
            assert concurrent.detect_page(NETFLIX_BILLING) == detector.detect_page(NETFLIX_BILLING)

    def test_shared_across_threads(self, detector):
        pages = [NETFLIX_BILLING, {"markup": SPOTIFY_MARKUP}, {}] * 4
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(detector.detect_page, pages))
        assert results == [detector.detect_page(p) for p in pages]


class TestScan:
    def test_empty_content(self, detector):
        candidate = detector.scan(NormalizedContent(url="https://example.com/pricing"))
        assert candidate.confidence == 0.0
        assert candidate.metadata.page_type == "pricing"

    def test_analyze_exposes_scores(self, detector):
        context, result = detector.analyze(NormalizedContent(text="Netflix $15.99 per month subscription"))
        assert context.has_subscription_keywords
        assert context.has_pricing_info
        assert result.signal_count >= 3
        assert result.confirmed


class TestDetectEmail:
    def test_gateway_receipt(self, detector):
        result = detector.detect_email(
            {"from": "receipts@stripe.com", "subject": "Your receipt from Acme Co - $49.00", "body": ""}
        )
        assert result.gateway == "Stripe"
        assert result.gateway_confidence == pytest.approx(0.57)
        assert result.merchant_name == "Acme Co"
        assert result.amount == 49.0
        assert result.type == "receipt"
        assert result.status == "success"
        assert result.confidence == 1.0

    def test_unclaimed_email_uses_page_pipeline(self, detector):
        result = detector.detect_email(
            {
                "from": "hello@netflix.com",
                "subject": "Your Netflix membership",
                "body": "Your plan renews on 2026-03-01 for $15.49 per month.",
            }
        )
        assert result.gateway is None
        assert result.gateway_kind is None
        assert result.merchant_name == "Netflix"
        assert result.amount == 15.49
        assert result.billing_cycle == "monthly"
        assert result.type == "receipt"
        assert result.status == "success"
        assert result.confidence >= 0.7

    def test_unclaimed_email_type_and_ids(self, detector):
        result = detector.detect_email(
            {
                "from": "accounts@somesaas.test",
                "subject": "Your refund for invoice number INV-2026-77",
                "body": "We refunded $20.00.",
            }
        )
        assert result.gateway is None
        assert result.type == "refund"
        assert result.status == "refunded"
        assert result.metadata.invoice_id == "INV-2026-77"

    def test_model_input(self, detector):
        message = ParsedEmailContent(sender="billing@stripe.com", subject="Your payment failed", body="$10.00 due")
        assert detector.detect_email(message).status == "failed"

    def test_empty_email(self, detector):
        result = detector.detect_email({"from": "x@y.test"})
        assert result == EmailDetection()
        assert result.confidence == 0.0

    def test_invalid_email_degrades(self, detector):
        result = detector.detect_email({"subject": "Receipt", "date": "not a date"})
        assert result.confidence == 0.0
        assert result.gateway is None


class TestDetectRawEmail:
    def test_rfc822(self, detector):
        result = detector.detect_raw_email(RAW_STRIPE_RECEIPT)
        assert result.gateway == "Stripe"
        assert result.merchant_name == "Acme Co"
        assert result.amount == 49.0
        assert result.date == datetime(2026, 1, 15, 10, 0, tzinfo=UTC)
        assert result.metadata.invoice_id == "in_1QwErTy"
        assert result.metadata.customer_email == "jane@example.com"

    def test_flat_mapping(self, detector):
        result = detector.detect_raw_email(
            {"subject": "Your receipt from Acme Co", "sender": "receipts@stripe.com", "text": "Paid $12.00"}
        )
        assert result.gateway == "Stripe"
        assert result.amount == 12.0

    def test_forced_platform(self, detector):
        assert detector.detect_raw_email(RAW_STRIPE_RECEIPT, platform="rfc822").gateway == "Stripe"

    @pytest.mark.parametrize("raw", [12345, None])
    def test_unusable_payload(self, detector, raw):
        assert detector.detect_raw_email(raw).confidence == 0.0

    def test_unknown_platform(self, detector):
        assert detector.detect_raw_email({"subject": "x"}, platform="carrier-pigeon").confidence == 0.0

    def test_gmail_body_not_a_mapping(self, detector):
        raw = {
            "payload": {
                "headers": [
                    {"name": "From", "value": "receipts@stripe.com"},
                    {"name": "Subject", "value": "Your receipt from Acme Co - $49.00"},
                ],
                "body": "not-a-dict",
            }
        }
        result = detector.detect_raw_email(raw)
        assert result.gateway == "Stripe"
        assert result.amount == 49.0

    @pytest.mark.parametrize(
        "payload",
        [{"body": "not-a-dict"}, {"parts": "not-a-list"}, {"headers": 7, "body": {"data": 7}}],
    )
    def test_gmail_odd_shapes_degrade(self, detector, payload):
        assert detector.detect_raw_email({"payload": payload}).confidence == 0.0


class TestLogContext:
    def test_page_scan_keeps_caller_bindings(self, detector):
        with structlog.contextvars.bound_contextvars(request_id="abc"):
            detector.detect_page(NETFLIX_BILLING)
            detector.detect_page({"forms": "not a list"})
            assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}

    def test_email_scan_keeps_caller_bindings(self, detector):
        with structlog.contextvars.bound_contextvars(request_id="abc", url="https://app.test/inbox"):
            detector.detect_email({"from": "receipts@stripe.com", "subject": "Receipt", "body": "$5.00"})
            detector.detect_raw_email(RAW_STRIPE_RECEIPT)
            assert structlog.contextvars.get_contextvars() == {
                "request_id": "abc",
                "url": "https://app.test/inbox",
            }

    def test_page_url_bound_during_scan(self, kb, config):
        seen: list[dict] = []

        def capture(content, env):
            seen.append(structlog.contextvars.get_contextvars())
            return []

        capturing = SubscriptionDetector(kb, config, extractors=(ExtractorDef("capture", capture),))
        with structlog.contextvars.bound_contextvars(url="https://outer.test"):
            capturing.detect_page({"text": "x", "url": "https://acme.test/billing"})
            assert structlog.contextvars.get_contextvars() == {"url": "https://outer.test"}
        assert seen == [{"variant": "page", "url": "https://acme.test/billing"}]


class TestHelpers:
    def test_is_payment_receipt(self, detector):
        assert detector.is_payment_receipt(
            {"from": "receipts@stripe.com", "subject": "Receipt", "body": "Processed by Stripe"}
        )
        assert not detector.is_payment_receipt({"from": "friend@example.com", "subject": "Lunch?"})

    def test_supported_gateways(self, detector, kb):
        assert detector.supported_gateways() == [g.name for g in kb.gateways]

    def test_default_knowledge_base(self):
        assert "Stripe" in SubscriptionDetector().supported_gateways()
