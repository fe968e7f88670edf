# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import subsignal  # noqa: F401
except ImportError:
    raise ImportError("subsignal is not installed. Run: pip install -e '.[dev]'") from None

from datetime import UTC, datetime

import pytest

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=UTC)


@pytest.fixture(scope="session")
def kb():
    """The packaged knowledge base (loaded once per session)."""
    from subsignal.knowledge_base import load_knowledge_base_from

    return load_knowledge_base_from(None)


@pytest.fixture
def config():
    from subsignal.config import DetectorConfig

    return DetectorConfig()


@pytest.fixture
def env(kb, config):
    from subsignal.extractors import ScanEnv

    return ScanEnv(knowledge_base=kb, config=config)


@pytest.fixture
def detector(kb, config):
    """Detector with a frozen clock so candidates compare equal across runs."""
    from subsignal.engine import SubscriptionDetector

    return SubscriptionDetector(knowledge_base=kb, config=config, clock=lambda: FIXED_NOW)


@pytest.fixture
def page():
    """Build NormalizedContent for extractor tests without going through markup."""
    from subsignal.normalizer import NormalizedContent

    def _make(text: str = "", **kwargs):
        return NormalizedContent(text=text, **kwargs)

    return _make


@pytest.fixture(autouse=True)
def _reset_kb_cache(monkeypatch):
    """Keep SUBSIGNAL_KB_DIR from leaking between tests."""
    from subsignal.knowledge_base import KB_DIR_ENV, load_knowledge_base

    monkeypatch.delenv(KB_DIR_ENV, raising=False)
    load_knowledge_base.cache_clear()
    yield
    load_knowledge_base.cache_clear()
