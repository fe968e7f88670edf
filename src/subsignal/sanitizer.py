# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Cleanup for untrusted short text lifted out of pages and emails.

Merchant and organization names come straight from markup the page author
controls. Before they reach a candidate they are stripped of control
characters and escape sequences, collapsed to one line and truncated.
"""

from __future__ import annotations

import html
import re

# Zero-width chars, bidi overrides, C0/C1 controls (tab/newline handled separately)
_CONTROL_CHAR_RE = re.compile(
    r"[\u200B-\u200F\u202A-\u202E\u2060-\u2069\uFEFF\uFFF9-\uFFFB"
    r"\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F-\u009F]"
)

_ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")

_WS_RE = re.compile(r"\s+")

# Trailing marketing noise on og:site_name / organization names
_NAME_SUFFIX_RE = re.compile(r"\s*[|\-–—:]\s*(?:official site|home|homepage|log ?in|sign ?in)\s*$", re.IGNORECASE)


def sanitize_text(text: str, max_len: int = 256) -> str:
    """Sanitize a short text field.

    - Unescapes HTML entities
    - Strips Unicode control characters and ANSI escapes
    - Collapses all whitespace (including newlines) into single spaces
    - Truncates to max_len
    """
    if not text:
        return ""
    text = html.unescape(str(text))
    text = _ANSI_ESCAPE_RE.sub("", text)
    text = _CONTROL_CHAR_RE.sub("", text)
    text = _WS_RE.sub(" ", text).strip()
    if len(text) > max_len:
        text = text[:max_len].rstrip()
    return text


def clean_entity_name(name: str, max_len: int = 120) -> str:
    """Sanitize a merchant/organization name and drop trailing site boilerplate."""
    cleaned = sanitize_text(name, max_len=max_len)
    cleaned = _NAME_SUFFIX_RE.sub("", cleaned)
    return cleaned.strip(" \"'")
