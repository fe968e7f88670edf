# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Amount parsing and currency inference shared by the price-bearing extractors."""

from __future__ import annotations

import math
import re
from typing import Any
from urllib.parse import urlparse

# Symbol/prefix → ISO 4217. Multi-character prefixes first so "CA$" wins over "$".
_CURRENCY_MARKERS: tuple[tuple[str, str], ...] = (
    ("CAD", "CAD"),
    ("CA$", "CAD"),
    ("AUD", "AUD"),
    ("A$", "AUD"),
    ("USD", "USD"),
    ("US$", "USD"),
    ("EUR", "EUR"),
    ("GBP", "GBP"),
    ("INR", "INR"),
    ("JPY", "JPY"),
    ("€", "EUR"),
    ("£", "GBP"),
    ("¥", "JPY"),
    ("₹", "INR"),
    ("$", "USD"),
)

_WORD_CURRENCIES: dict[str, str] = {
    "dollar": "USD",
    "dollars": "USD",
    "buck": "USD",
    "bucks": "USD",
    "euro": "EUR",
    "euros": "EUR",
    "pound": "GBP",
    "pounds": "GBP",
}

_DOMAIN_CURRENCY: dict[str, str] = {
    ".co.uk": "GBP",
    ".uk": "GBP",
    ".fr": "EUR",
    ".de": "EUR",
    ".es": "EUR",
    ".it": "EUR",
    ".nl": "EUR",
    ".ie": "EUR",
    ".co.jp": "JPY",
    ".jp": "JPY",
    ".in": "INR",
    ".com.au": "AUD",
    ".au": "AUD",
    ".ca": "CAD",
}

_NUMERIC_RE = re.compile(r"\d[\d,.]*")


def parse_amount(v: Any) -> float | None:
    """Parse ``"1,299.00"``, ``"1.299,00"``, ``"$15"`` or a number into a float.

    Returns None for anything that does not contain a finite number.
    """
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        try:
            amount = float(v)
        except OverflowError:
            return None
        return amount if math.isfinite(amount) else None
    m = _NUMERIC_RE.search(str(v))
    if not m:
        return None
    s = m.group(0)
    if "." in s and "," in s and s.rfind(",") > s.rfind("."):
        s = s.replace(".", "").replace(",", ".")
    elif "," in s and "." not in s and re.fullmatch(r"\d+,\d{2}", s):
        # "9,99": comma as the decimal separator
        s = s.replace(",", ".")
    else:
        s = s.replace(",", "")
    s = s.rstrip(".")
    try:
        amount = float(s)
    except ValueError:
        return None
    return amount if math.isfinite(amount) else None


def currency_from_marker(text: str) -> str | None:
    """Return the ISO code for the currency symbol/code/word in ``text``, if any."""
    if not text:
        return None
    upper = text.upper()
    for marker, code in _CURRENCY_MARKERS:
        if marker in upper:
            return code
    for word in re.findall(r"[a-z]+", text.lower()):
        if word in _WORD_CURRENCIES:
            return _WORD_CURRENCIES[word]
    return None


def infer_currency(url: str, default: str = "USD") -> str:
    """Infer an ISO 4217 currency code from the URL's top-level domain."""
    if not url:
        return default
    host = urlparse(url if "//" in url else f"//{url}").hostname or ""
    for tld, code in _DOMAIN_CURRENCY.items():
        if host.endswith(tld):
            return code
    return default


def resolve_currency(marker: str | None, url: str, default: str = "USD") -> str:
    """Currency for an amount shown with ``marker`` on the page at ``url``."""
    site_currency = infer_currency(url, default=default)
    if not marker:
        return site_currency
    code = currency_from_marker(marker) or site_currency
    # A bare "$" on a Canadian/Australian site is that country's dollar.
    if marker.strip() == "$" and site_currency in ("CAD", "AUD"):
        return site_currency
    return code


def normalize_currency_code(value: Any, default: str = "USD") -> str:
    """Accept a code (``"usd"``) or symbol (``"$"``) and return an upper-case ISO code."""
    if value is None:
        return default
    s = str(value).strip()
    if len(s) == 3 and s.isalpha():
        return s.upper()
    return currency_from_marker(s) or default
