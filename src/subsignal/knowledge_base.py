# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Static merchant and payment-gateway tables.

The tables ship as YAML under ``subsignal/data`` and are validated with
pydantic, then compiled into immutable entries holding ready-to-use regexes.
A ``KnowledgeBase`` is built once and injected into the detector; every
pattern is compiled at load time so a bad table fails at startup rather than
in the middle of a scan.

Set ``SUBSIGNAL_KB_DIR`` to a directory containing ``merchants.yaml`` and/or
``gateways.yaml`` to override the packaged tables.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from subsignal.errors import KnowledgeBaseError

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent / "data"
KB_DIR_ENV = "SUBSIGNAL_KB_DIR"

# Email types in the order they are tested; "receipt" is the fallback.
EMAIL_TYPE_ORDER: tuple[str, ...] = (
    "payment_failed",
    "refund",
    "dispute",
    "trial_ending",
    "subscription_update",
    "invoice",
)
EMAIL_TYPES: tuple[str, ...] = (*EMAIL_TYPE_ORDER, "receipt")

ID_FIELDS: tuple[str, ...] = (
    "event_id",
    "invoice_id",
    "customer_id",
    "subscription_id",
    "receipt_url",
    "transaction_id",
)


class GatewayKind(StrEnum):
    GATEWAY = "gateway"
    PLATFORM = "platform"


# --- YAML schemas ---


class _MerchantRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    category: str = "Other"
    confidence: float = Field(ge=0.0, le=1.0)
    patterns: list[str] = Field(min_length=1)
    domains: list[str] = Field(default_factory=list)


class _MerchantFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    merchants: list[_MerchantRecord]


class _GatewayRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    kind: GatewayKind = GatewayKind.GATEWAY
    multiplier: float = Field(ge=0.0, le=1.0)
    senders: list[str] = Field(min_length=1)
    subjects: dict[str, list[str]] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)
    ids: dict[str, str] = Field(default_factory=dict)


class _GatewayFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email_types: dict[str, list[str]] = Field(default_factory=dict)
    ids: dict[str, str] = Field(default_factory=dict)
    gateways: list[_GatewayRecord]


# --- compiled entries ---


@dataclass(frozen=True, slots=True)
class MerchantEntry:
    canonical_name: str
    category: str
    base_confidence: float
    match_patterns: tuple[re.Pattern[str], ...]
    domains: tuple[str, ...] = ()

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.match_patterns)

    def owns_host(self, host: str) -> bool:
        """True when ``host`` is one of the merchant's domains or a subdomain of one."""
        host = host.lower().rstrip(".")
        return any(host == d or host.endswith("." + d) for d in self.domains)


@dataclass(frozen=True, slots=True)
class GatewayEntry:
    name: str
    kind: GatewayKind
    multiplier: float
    sender_patterns: tuple[re.Pattern[str], ...]
    subject_patterns_by_type: Mapping[str, tuple[re.Pattern[str], ...]]
    keywords: tuple[str, ...]
    id_patterns: Mapping[str, re.Pattern[str]]

    @property
    def subject_patterns(self) -> tuple[re.Pattern[str], ...]:
        return tuple(p for patterns in self.subject_patterns_by_type.values() for p in patterns)


@dataclass(frozen=True, slots=True)
class KnowledgeBase:
    """Immutable bundle of every static table the detector consults."""

    merchants: tuple[MerchantEntry, ...]
    gateways: tuple[GatewayEntry, ...]
    email_type_patterns: Mapping[str, tuple[re.Pattern[str], ...]]
    default_id_patterns: Mapping[str, re.Pattern[str]]

    def merchant(self, name: str) -> MerchantEntry | None:
        for entry in self.merchants:
            if entry.canonical_name.lower() == name.lower():
                return entry
        return None

    def gateway(self, name: str) -> GatewayEntry | None:
        for entry in self.gateways:
            if entry.name == name:
                return entry
        return None


def bounded_pattern(fragment: str) -> re.Pattern[str]:
    """Compile a merchant fragment so it only matches as a whole token.

    ``\\b`` is not enough for names ending in ``+`` ("Disney+"), so the
    boundary is "not preceded/followed by an ASCII letter or digit".
    """
    return re.compile(rf"(?<![a-z0-9])(?:{fragment})(?![a-z0-9])", re.IGNORECASE)


def _compile(pattern: str, where: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise KnowledgeBaseError(f"{where}: invalid pattern {pattern!r}: {exc}") from exc


def _compile_types(table: dict[str, list[str]], where: str) -> Mapping[str, tuple[re.Pattern[str], ...]]:
    compiled: dict[str, tuple[re.Pattern[str], ...]] = {}
    for email_type, patterns in table.items():
        if email_type not in EMAIL_TYPES:
            raise KnowledgeBaseError(f"{where}: unknown email type {email_type!r}")
        compiled[email_type] = tuple(_compile(p, f"{where}.{email_type}") for p in patterns)
    return MappingProxyType(compiled)


def _compile_ids(table: dict[str, str], where: str) -> Mapping[str, re.Pattern[str]]:
    compiled: dict[str, re.Pattern[str]] = {}
    for field_name, pattern in table.items():
        if field_name not in ID_FIELDS:
            raise KnowledgeBaseError(f"{where}: unknown identifier field {field_name!r}")
        compiled[field_name] = _compile(pattern, f"{where}.{field_name}")
    return MappingProxyType(compiled)


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise KnowledgeBaseError(f"knowledge base file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise KnowledgeBaseError(f"{path.name}: invalid YAML: {exc}") from exc


def _build_merchants(raw: Any, source: str) -> tuple[MerchantEntry, ...]:
    try:
        parsed = _MerchantFile.model_validate(raw)
    except ValidationError as exc:
        raise KnowledgeBaseError(f"{source}: {exc}") from exc

    entries: list[MerchantEntry] = []
    for rec in parsed.merchants:
        patterns: list[re.Pattern[str]] = []
        for fragment in rec.patterns:
            try:
                patterns.append(bounded_pattern(fragment))
            except re.error as exc:
                raise KnowledgeBaseError(f"{source}: {rec.name}: invalid pattern {fragment!r}: {exc}") from exc
        entries.append(
            MerchantEntry(
                canonical_name=rec.name,
                category=rec.category,
                base_confidence=rec.confidence,
                match_patterns=tuple(patterns),
                domains=tuple(d.lower() for d in rec.domains),
            )
        )
    return tuple(entries)


def _build_gateways(
    raw: Any, source: str
) -> tuple[tuple[GatewayEntry, ...], Mapping[str, tuple[re.Pattern[str], ...]], Mapping[str, re.Pattern[str]]]:
    try:
        parsed = _GatewayFile.model_validate(raw)
    except ValidationError as exc:
        raise KnowledgeBaseError(f"{source}: {exc}") from exc

    names = [g.name for g in parsed.gateways]
    if len(names) != len(set(names)):
        raise KnowledgeBaseError(f"{source}: duplicate gateway names")

    entries = tuple(
        GatewayEntry(
            name=rec.name,
            kind=rec.kind,
            multiplier=rec.multiplier,
            sender_patterns=tuple(_compile(p, f"{source}:{rec.name}.senders") for p in rec.senders),
            subject_patterns_by_type=_compile_types(rec.subjects, f"{source}:{rec.name}.subjects"),
            keywords=tuple(k.lower() for k in rec.keywords),
            id_patterns=_compile_ids(rec.ids, f"{source}:{rec.name}.ids"),
        )
        for rec in parsed.gateways
    )
    return (
        entries,
        _compile_types(parsed.email_types, f"{source}:email_types"),
        _compile_ids(parsed.ids, f"{source}:ids"),
    )


def build_knowledge_base(merchants: Any, gateways: Any) -> KnowledgeBase:
    """Validate and compile already-parsed YAML documents into a KnowledgeBase."""
    merchant_entries = _build_merchants(merchants, "merchants")
    gateway_entries, email_types, default_ids = _build_gateways(gateways, "gateways")
    return KnowledgeBase(
        merchants=merchant_entries,
        gateways=gateway_entries,
        email_type_patterns=email_types,
        default_id_patterns=default_ids,
    )


def load_knowledge_base_from(directory: Path | str | None = None) -> KnowledgeBase:
    """Load the tables from ``directory``, falling back to the packaged copy per file."""
    override = Path(directory) if directory else None
    paths: dict[str, Path] = {}
    for stem in ("merchants", "gateways"):
        candidate = override / f"{stem}.yaml" if override else None
        paths[stem] = candidate if candidate is not None and candidate.exists() else DATA_DIR / f"{stem}.yaml"

    kb = build_knowledge_base(_read_yaml(paths["merchants"]), _read_yaml(paths["gateways"]))
    logger.debug(
        "Knowledge base loaded: %d merchants, %d gateways (%s)",
        len(kb.merchants),
        len(kb.gateways),
        override or "packaged",
    )
    return kb


@lru_cache(maxsize=1)
def load_knowledge_base() -> KnowledgeBase:
    """The default knowledge base, loaded once per process.

    Honours ``SUBSIGNAL_KB_DIR``; call ``load_knowledge_base.cache_clear()``
    after changing it.
    """
    return load_knowledge_base_from(os.environ.get(KB_DIR_ENV) or None)
