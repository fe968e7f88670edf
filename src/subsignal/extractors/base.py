# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared plumbing for the signal extractors."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from subsignal.config import DetectorConfig
from subsignal.knowledge_base import KnowledgeBase
from subsignal.normalizer import NormalizedContent, ScanMode
from subsignal.signals import Signal


@dataclass(frozen=True, slots=True)
class ScanEnv:
    """Read-only tables and settings every extractor may consult."""

    knowledge_base: KnowledgeBase
    config: DetectorConfig

    def amount_ceiling(self, mode: ScanMode) -> float:
        if mode is ScanMode.EMAIL:
            return self.config.email_amount_ceiling
        return self.config.page_amount_ceiling


Extractor = Callable[[NormalizedContent, ScanEnv], list[Signal]]


@dataclass(frozen=True, slots=True)
class ExtractorDef:
    """A named extractor; registry order is the tie order for equal scores."""

    name: str
    run: Extractor
