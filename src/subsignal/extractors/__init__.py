# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Signal extractors and the runner that isolates their failures.

Extractors are pure ``(content, env) -> list[Signal]`` functions sharing no
mutable state, so they may run in any order or concurrently. The runner
always returns signals in registry order; that order is also the tie order
when the scorer sorts equal scores.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import Executor

from subsignal.errors import ExtractorError
from subsignal.extractors.base import Extractor, ExtractorDef, ScanEnv
from subsignal.extractors.billing_cycle import extract_billing_cycles
from subsignal.extractors.dates import extract_renewal_dates
from subsignal.extractors.forms import extract_forms
from subsignal.extractors.keywords import extract_keywords
from subsignal.extractors.merchant import extract_merchants
from subsignal.extractors.microdata import extract_microdata
from subsignal.extractors.open_graph import extract_open_graph
from subsignal.extractors.price import extract_prices
from subsignal.extractors.structured_data import extract_structured_data
from subsignal.extractors.url import extract_url
from subsignal.normalizer import NormalizedContent
from subsignal.signals import Signal

__all__ = [
    "EXTRACTORS",
    "Extractor",
    "ExtractorDef",
    "ScanEnv",
    "run_extractors",
]

logger = logging.getLogger(__name__)

EXTRACTORS: tuple[ExtractorDef, ...] = (
    ExtractorDef("merchant", extract_merchants),
    ExtractorDef("price", extract_prices),
    ExtractorDef("billing_cycle", extract_billing_cycles),
    ExtractorDef("keywords", extract_keywords),
    ExtractorDef("renewal_date", extract_renewal_dates),
    ExtractorDef("structured_data", extract_structured_data),
    ExtractorDef("microdata", extract_microdata),
    ExtractorDef("open_graph", extract_open_graph),
    ExtractorDef("forms", extract_forms),
    ExtractorDef("url", extract_url),
)


def _run_one(extractor: ExtractorDef, content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    try:
        return list(extractor.run(content, env))
    except Exception as exc:
        err = ExtractorError(f"extractor {extractor.name!r} failed: {exc}", extractor=extractor.name)
        logger.warning("%s", err, exc_info=True)
        return []


def run_extractors(
    content: NormalizedContent,
    env: ScanEnv,
    *,
    extractors: Sequence[ExtractorDef] = EXTRACTORS,
    executor: Executor | None = None,
) -> list[Signal]:
    """Run every extractor over ``content`` and concatenate their signals.

    A failing extractor contributes nothing; the rest still run. With an
    ``executor`` the extractors run concurrently and the result is identical.
    """
    if executor is None:
        batches = [_run_one(ex, content, env) for ex in extractors]
    else:
        futures = [executor.submit(_run_one, ex, content, env) for ex in extractors]
        batches = [f.result() for f in futures]
    return [signal for batch in batches for signal in batch]
