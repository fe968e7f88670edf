# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the merchant/gateway tables and their loader."""

from __future__ import annotations

import pytest

from subsignal.errors import KnowledgeBaseError
from subsignal.knowledge_base import (
    DATA_DIR,
    KB_DIR_ENV,
    GatewayKind,
    bounded_pattern,
    build_knowledge_base,
    load_knowledge_base,
    load_knowledge_base_from,
)

_MERCHANTS = {
    "merchants": [
        {"name": "Acme Cloud", "category": "Productivity", "confidence": 0.9, "patterns": ["acme"]},
    ]
}
_GATEWAYS = {
    "email_types": {"refund": ["refund"]},
    "ids": {"invoice_id": r"invoice\s*#\s*(\d+)"},
    "gateways": [
        {"name": "PayCo", "multiplier": 0.9, "senders": [r"payco\.test"], "keywords": ["PayCo"]},
    ],
}


class TestPackagedTables:
    def test_loads(self, kb):
        assert len(kb.merchants) >= 60
        assert len(kb.gateways) >= 30

    def test_data_files_shipped(self):
        assert (DATA_DIR / "merchants.yaml").is_file()
        assert (DATA_DIR / "gateways.yaml").is_file()

    @pytest.mark.parametrize("name", ["Netflix", "Spotify", "Disney+", "Notion", "AWS", "Calm"])
    def test_known_merchants(self, kb, name):
        entry = kb.merchant(name)
        assert entry is not None
        assert 0.0 < entry.base_confidence <= 1.0

    def test_merchant_lookup_case_insensitive(self, kb):
        assert kb.merchant("netflix") is kb.merchant("Netflix")
        assert kb.merchant("Nope Inc") is None

    def test_gateway_order(self, kb):
        names = [g.name for g in kb.gateways]
        assert names[:3] == ["Stripe", "PayPal", "Square"]
        assert names[-1] == "Generic Payment"

    def test_gateway_kinds(self, kb):
        assert kb.gateway("Stripe").kind is GatewayKind.GATEWAY
        assert kb.gateway("Shopify").kind is GatewayKind.PLATFORM

    def test_gateway_names_unique(self, kb):
        names = [g.name for g in kb.gateways]
        assert len(names) == len(set(names))

    def test_shared_patterns_present(self, kb):
        assert set(kb.email_type_patterns) >= {"payment_failed", "refund", "dispute", "invoice"}
        assert set(kb.default_id_patterns) == {"invoice_id", "transaction_id"}

    def test_stripe_id_patterns(self, kb):
        stripe = kb.gateway("Stripe")
        assert set(stripe.id_patterns) == {"event_id", "invoice_id", "customer_id", "subscription_id", "receipt_url"}
        assert stripe.id_patterns["customer_id"].search("Customer cus_ABC123").group(1) == "cus_ABC123"

    def test_subject_patterns_flattened(self, kb):
        stripe = kb.gateway("Stripe")
        flat = stripe.subject_patterns
        assert len(flat) == sum(len(p) for p in stripe.subject_patterns_by_type.values())

    def test_tables_read_only(self, kb):
        stripe = kb.gateway("Stripe")
        with pytest.raises(TypeError):
            kb.email_type_patterns["refund"] = ()
        with pytest.raises(TypeError):
            kb.default_id_patterns["invoice_id"] = None
        with pytest.raises(TypeError):
            stripe.id_patterns["customer_id"] = None
        with pytest.raises(TypeError):
            del stripe.subject_patterns_by_type["receipt"]
        assert kb.default_id_patterns["invoice_id"] is not None


class TestMerchantMatching:
    @pytest.mark.parametrize(
        "text,name",
        [
            ("Your Netflix membership", "Netflix"),
            ("Welcome to Disney+ Premium", "Disney+"),
            ("disneyplus.com/account", "Disney+"),
            ("Amazon Web Services invoice", "AWS"),
            ("HBO  Max monthly", "HBO Max"),
        ],
    )
    def test_matches(self, kb, text, name):
        assert kb.merchant(name).matches(text)

    @pytest.mark.parametrize("text", ["He spoke calmly", "Calmness is key", "recalm"])
    def test_no_partial_word_match(self, kb, text):
        assert not kb.merchant("Calm").matches(text)

    def test_owns_host(self, kb):
        netflix = kb.merchant("Netflix")
        assert netflix.owns_host("netflix.com")
        assert netflix.owns_host("www.netflix.com")
        assert netflix.owns_host("WWW.NETFLIX.COM.")
        assert not netflix.owns_host("notnetflix.com")
        assert not netflix.owns_host("netflix.com.evil.test")


class TestBoundedPattern:
    def test_plus_suffix(self):
        p = bounded_pattern(r"disney\+")
        assert p.search("Disney+ Hotstar")
        assert p.search("(disney+)")

    def test_alnum_neighbours_block(self):
        p = bounded_pattern("zoom")
        assert not p.search("zoomed")
        assert not p.search("xzoom")
        assert p.search("Zoom Pro")
        assert p.search("zoom.us")


class TestBuild:
    def test_minimal_tables(self):
        kb = build_knowledge_base(_MERCHANTS, _GATEWAYS)
        assert kb.merchants[0].canonical_name == "Acme Cloud"
        gw = kb.gateways[0]
        assert gw.kind is GatewayKind.GATEWAY
        assert gw.keywords == ("payco",)
        assert gw.sender_patterns[0].search("billing@PAYCO.test")

    def test_merchant_defaults(self):
        kb = build_knowledge_base(
            {"merchants": [{"name": "X", "confidence": 0.5, "patterns": ["x"]}]}, _GATEWAYS
        )
        assert kb.merchants[0].category == "Other"
        assert kb.merchants[0].domains == ()

    @pytest.mark.parametrize(
        "merchants",
        [
            {"merchants": [{"name": "X", "confidence": 1.5, "patterns": ["x"]}]},
            {"merchants": [{"name": "X", "confidence": 0.5, "patterns": []}]},
            {"merchants": [{"name": "X", "confidence": 0.5, "patterns": ["x"], "colour": "red"}]},
            {"merchants": [{"name": "X", "confidence": 0.5, "patterns": ["(unclosed"]}]},
            {"shops": []},
            None,
        ],
        ids=["confidence", "no-patterns", "extra-key", "bad-regex", "wrong-root", "empty-file"],
    )
    def test_invalid_merchants(self, merchants):
        with pytest.raises(KnowledgeBaseError):
            build_knowledge_base(merchants, _GATEWAYS)

    @pytest.mark.parametrize(
        "gateways",
        [
            {"gateways": [{"name": "G", "multiplier": 0.9, "senders": ["[bad"]}]},
            {"gateways": [{"name": "G", "multiplier": 0.9, "senders": ["g"], "subjects": {"spam": ["x"]}}]},
            {"gateways": [{"name": "G", "multiplier": 0.9, "senders": ["g"], "ids": {"order_id": "x"}}]},
            {"gateways": [{"name": "G", "multiplier": 0.9, "senders": ["g"], "kind": "bank"}]},
            {
                "gateways": [
                    {"name": "G", "multiplier": 0.9, "senders": ["g"]},
                    {"name": "G", "multiplier": 0.8, "senders": ["h"]},
                ]
            },
            {"email_types": {"newsletter": ["x"]}, "gateways": []},
        ],
        ids=["bad-sender", "unknown-type", "unknown-id", "unknown-kind", "duplicate", "unknown-shared-type"],
    )
    def test_invalid_gateways(self, gateways):
        with pytest.raises(KnowledgeBaseError):
            build_knowledge_base(_MERCHANTS, gateways)

    def test_error_names_offending_gateway(self):
        bad = {"gateways": [{"name": "Broken", "multiplier": 0.9, "senders": ["(x"]}]}
        with pytest.raises(KnowledgeBaseError, match="Broken"):
            build_knowledge_base(_MERCHANTS, bad)


class TestLoading:
    def test_override_directory(self, tmp_path):
        import yaml

        (tmp_path / "merchants.yaml").write_text(yaml.safe_dump(_MERCHANTS), encoding="utf-8")
        kb = load_knowledge_base_from(tmp_path)
        assert [m.canonical_name for m in kb.merchants] == ["Acme Cloud"]
        # gateways.yaml absent: packaged copy used
        assert kb.gateway("Stripe") is not None

    def test_invalid_yaml(self, tmp_path):
        (tmp_path / "gateways.yaml").write_text("gateways: [unclosed", encoding="utf-8")
        with pytest.raises(KnowledgeBaseError, match="invalid YAML"):
            load_knowledge_base_from(tmp_path)

    def test_missing_directory_falls_back(self, tmp_path):
        kb = load_knowledge_base_from(tmp_path / "nowhere")
        assert kb.merchant("Netflix") is not None

    def test_default_is_cached(self):
        assert load_knowledge_base() is load_knowledge_base()

    def test_env_override(self, tmp_path, monkeypatch):
        import yaml

        (tmp_path / "merchants.yaml").write_text(yaml.safe_dump(_MERCHANTS), encoding="utf-8")
        monkeypatch.setenv(KB_DIR_ENV, str(tmp_path))
        load_knowledge_base.cache_clear()
        assert load_knowledge_base().merchant("Acme Cloud") is not None
