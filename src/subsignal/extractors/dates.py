# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Renewal-date extraction.

Only dates that follow renewal vocabulary ("next billing date", "renews on",
"due date", ...) within a short window count. A bare date elsewhere on the
page says nothing about the subscription.
"""

from __future__ import annotations

import re
from datetime import date

from subsignal.extractors.base import ScanEnv
from subsignal.normalizer import NormalizedContent
from subsignal.signals import RenewalDateSignal, Signal, SignalSource

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

_VOCAB = (
    r"next\s+(?:billing|payment|charge|renewal)(?:\s+date)?"
    r"|renews?\s+on|will\s+renew(?:\s+on)?|renewal(?:\s+date)?"
    r"|due\s+date|due\s+on|billed\s+on|next\s+invoice"
)
_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?"
_DATE = (
    r"(?P<iso>\d{4}-\d{2}-\d{2})"
    r"|(?P<us>\d{1,2}/\d{1,2}/\d{2,4})"
    rf"|(?P<mdy>{_MONTH}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}})"
    rf"|(?P<dmy>\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTH},?\s+\d{{4}})"
)

# Vocabulary, then at most 40 characters on the same line, then the date.
RENEWAL_DATE_RE = re.compile(rf"\b(?:{_VOCAB})\b[^\n]{{0,40}}?\b(?:{_DATE})", re.IGNORECASE)

RENEWAL_DATE_WEIGHT = 0.8


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_date(raw: str) -> date | None:
    """Parse the date formats the renewal pattern accepts; None when invalid."""
    s = raw.strip().lower().replace(",", " ")
    if m := re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})", s):
        return _safe_date(int(m[1]), int(m[2]), int(m[3]))
    if m := re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{2,4})", s):
        year = int(m[3])
        if year < 100:
            year += 2000
        return _safe_date(year, int(m[1]), int(m[2]))
    tokens = re.sub(r"(\d)(?:st|nd|rd|th)\b", r"\1", s).replace(".", "").split()
    if len(tokens) != 3:
        return None
    if tokens[0].isdigit():
        day, month_word, year = tokens
    else:
        month_word, day, year = tokens
    month = _MONTHS.get(month_word[:3])
    if month is None or not day.isdigit() or not year.isdigit():
        return None
    return _safe_date(int(year), month, int(day))


def extract_renewal_dates(content: NormalizedContent, env: ScanEnv) -> list[Signal]:
    signals: list[Signal] = []
    seen: set[str] = set()
    for m in RENEWAL_DATE_RE.finditer(content.text or ""):
        raw = next(v for v in m.groupdict().values() if v)
        if raw in seen:
            continue
        seen.add(raw)
        signals.append(
            RenewalDateSignal(
                base_confidence=RENEWAL_DATE_WEIGHT,
                source=SignalSource.TEXT,
                raw=raw,
                date=parse_date(raw),
            )
        )
    return signals
