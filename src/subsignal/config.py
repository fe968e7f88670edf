# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Detector configuration.

All tunables live on a frozen ``DetectorConfig`` that is built once and
injected into :class:`subsignal.engine.SubscriptionDetector`. Environment
overrides use the ``SUBSIGNAL_`` prefix, e.g.::

    SUBSIGNAL_ACCEPTANCE_THRESHOLD=0.75
    SUBSIGNAL_EMAIL_AMOUNT_CEILING=250000
"""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping

from subsignal.errors import ConfigError

ENV_PREFIX = "SUBSIGNAL_"

# Page-type boosts added to every signal score.
PAGE_TYPE_BOOSTS: dict[str, float] = {
    "billing": 0.2,
    "pricing": 0.2,
    "signup": 0.15,
    "dashboard": 0.1,
    "general": 0.0,
}


@dataclasses.dataclass(frozen=True, slots=True, kw_only=True)
class DetectorConfig:
    """Thresholds and limits for one detector instance."""

    acceptance_threshold: float = 0.7
    high_confidence_cutoff: float = 0.8
    high_confidence_bonus: float = 0.05
    high_confidence_bonus_cap: float = 0.2
    context_boost: float = 0.1
    corroboration_boost: float = 0.1
    page_amount_ceiling: float = 10_000.0
    email_amount_ceiling: float = 100_000.0
    gateway_threshold: float = 0.5
    receipt_threshold: float = 0.6
    max_structured_depth: int = 32
    max_email_part_depth: int = 10
    default_currency: str = "USD"

    def __post_init__(self) -> None:
        for name in (
            "acceptance_threshold",
            "high_confidence_cutoff",
            "high_confidence_bonus",
            "high_confidence_bonus_cap",
            "context_boost",
            "corroboration_boost",
            "gateway_threshold",
            "receipt_threshold",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigError(f"{name} must be within [0, 1], got {value}", setting=name)
        for name in ("page_amount_ceiling", "email_amount_ceiling"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive", setting=name)
        for name in ("max_structured_depth", "max_email_part_depth"):
            if getattr(self, name) < 1:
                raise ConfigError(f"{name} must be >= 1", setting=name)
        if len(self.default_currency) != 3 or not self.default_currency.isalpha():
            raise ConfigError(
                f"default_currency must be an ISO 4217 code, got {self.default_currency!r}",
                setting="default_currency",
            )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DetectorConfig:
        """Build a config from ``SUBSIGNAL_*`` variables, defaults elsewhere."""
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in dataclasses.fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper(), "").strip()
            if not raw:
                continue
            overrides[f.name] = _coerce(f.name, f.type, raw)
        return cls(**overrides)


def _coerce(name: str, type_name: object, raw: str) -> object:
    # Annotations are strings under ``from __future__ import annotations``.
    kind = str(type_name)
    try:
        if kind == "int":
            return int(raw)
        if kind == "float":
            return float(raw)
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name.upper()}={raw!r} is not a valid {kind}", setting=name) from None
    return raw.upper() if name == "default_currency" else raw
