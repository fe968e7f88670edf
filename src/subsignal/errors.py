# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""subsignal exception hierarchy.

All subsignal-specific errors inherit from SubsignalError. Errors raised at
construction time (knowledge base, configuration) propagate to the caller.
Errors raised while scanning a document are contained by the engine: a
detection call always returns a result.
"""

from __future__ import annotations


class SubsignalError(Exception):
    """Base exception for all subsignal errors."""


class MalformedFragmentError(SubsignalError):
    """A structured fragment (JSON-LD block, microdata item) could not be parsed."""

    def __init__(self, message: str, *, fragment_index: int = -1) -> None:
        super().__init__(message)
        self.fragment_index = fragment_index


class ExtractorError(SubsignalError):
    """A signal extractor failed unexpectedly (logged, never propagated)."""

    def __init__(self, message: str, *, extractor: str = "") -> None:
        super().__init__(message)
        self.extractor = extractor


class KnowledgeBaseError(SubsignalError):
    """Knowledge-base tables are missing, invalid, or contain a bad pattern."""


class ConfigError(SubsignalError):
    """Invalid detector configuration value."""

    def __init__(self, message: str, *, setting: str = "") -> None:
        super().__init__(message)
        self.setting = setting
