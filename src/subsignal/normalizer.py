# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Content normalization for page snapshots and billing email.

Pages:
  1. Visible text: BeautifulSoup, non-content tags and hidden nodes removed,
     whitespace collapsed. Caller-supplied text wins when present.
  2. Fragments: lxml pass over the raw markup collecting JSON-LD blocks,
     microdata items, meta tags and forms. Caller-supplied meta tags and forms
     take precedence over re-derived ones.

Email:
  Gmail API messages, Microsoft Graph messages, flat provider dicts
  (Yahoo / iCloud / ProtonMail / generic) and raw RFC 822 are all reduced to
  one ``ParsedEmailContent``. The text/plain part is preferred; HTML-only mail
  is reduced to visible text.

Nothing here raises on bad input: unparsable markup or undecodable bodies
produce empty fields.
"""

from __future__ import annotations

import base64
import binascii
import email
import email.policy
import email.utils
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import lxml.html
from bs4 import BeautifulSoup, Comment
from lxml import etree
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from subsignal.sanitizer import sanitize_text

logger = logging.getLogger(__name__)

_STRIP_TAGS = {"script", "style", "noscript", "template", "svg", "head", "iframe"}

_WS_RE = re.compile(r"\s+")

_DISPLAY_NONE_RE = re.compile(r"display\s*:\s*none", re.IGNORECASE)
_VISIBILITY_HIDDEN_RE = re.compile(r"visibility\s*:\s*hidden", re.IGNORECASE)

_FIELD_TAGS = ("input", "select", "textarea")


class ScanMode(StrEnum):
    PAGE = "page"
    EMAIL = "email"


class MailPlatform(StrEnum):
    GMAIL = "gmail"
    OUTLOOK = "outlook"
    YAHOO = "yahoo"
    ICLOUD = "icloud"
    PROTONMAIL = "protonmail"
    GENERIC = "generic"
    RFC822 = "rfc822"


# --- input models ---


class FormField(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, coerce_numbers_to_str=True)

    name: str = ""
    type: str = ""
    value: str = ""
    placeholder: str = ""
    label: str = ""

    def texts(self) -> tuple[str, ...]:
        return tuple(t for t in (self.name, self.value, self.placeholder, self.label) if t)


class FormSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    action: str = ""
    fields: list[FormField] = Field(default_factory=list)


class PageSnapshot(BaseModel):
    """A captured page as the browser extension reports it."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    text: str = ""
    markup: str = Field("", validation_alias=AliasChoices("markup", "html"))
    url: str = ""
    title: str = ""
    meta_tags: dict[str, str] = Field(default_factory=dict, validation_alias=AliasChoices("meta_tags", "metaTags"))
    forms: list[FormSnapshot] = Field(default_factory=list)


class ParsedEmailContent(BaseModel):
    """One email reduced to the fields the detector reads."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, coerce_numbers_to_str=True)

    subject: str = ""
    sender: str = Field("", alias="from")
    to: str = ""
    body: str = ""
    html_body: str = ""
    date: datetime | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.subject.strip() or self.body.strip() or self.html_body.strip())


# --- normalized output ---


@dataclass(frozen=True, slots=True)
class MicrodataItem:
    itemtype: str
    name: str = ""
    price: str = ""
    currency: str = ""


@dataclass(frozen=True, slots=True)
class NormalizedContent:
    """Plain text plus the structured fragments retained for the extractors."""

    text: str = ""
    markup: str = ""
    url: str = ""
    title: str = ""
    json_ld: tuple[str, ...] = ()
    microdata: tuple[MicrodataItem, ...] = ()
    meta_tags: Mapping[str, str] = field(default_factory=dict)
    forms: tuple[FormSnapshot, ...] = ()
    mode: ScanMode = ScanMode.PAGE

    @property
    def is_empty(self) -> bool:
        return not self.text.strip() and not self.markup.strip()


# --- visible text (BeautifulSoup) ---


def _remove_hidden_elements(soup: BeautifulSoup) -> None:
    """Drop elements a reader never sees."""
    for tag in soup.find_all(attrs={"hidden": True}):
        tag.decompose()
    for tag in soup.find_all(attrs={"aria-hidden": "true"}):
        tag.decompose()
    for tag in soup.find_all(style=_DISPLAY_NONE_RE):
        tag.decompose()
    for tag in soup.find_all(style=_VISIBILITY_HIDDEN_RE):
        tag.decompose()


def visible_text(markup: str) -> str:
    """Visible text of an HTML document or fragment, whitespace collapsed."""
    if not markup or not markup.strip():
        return ""
    soup = BeautifulSoup(markup, "html.parser")

    for tag in soup.find_all(list(_STRIP_TAGS)):
        tag.decompose()
    for comment in soup.find_all(string=lambda t: isinstance(t, Comment)):
        comment.extract()
    _remove_hidden_elements(soup)

    return _WS_RE.sub(" ", soup.get_text(" ")).strip()


# --- fragments (lxml) ---


def _parse_markup(markup: str) -> lxml.html.HtmlElement | None:
    if not markup or not markup.strip():
        return None
    try:
        return lxml.html.fromstring(markup)
    except (etree.ParserError, etree.XMLSyntaxError, ValueError) as exc:
        logger.debug("Markup not parseable by lxml: %s", exc)
        return None


def _short_itemtype(itemtype: str) -> str:
    # "https://schema.org/Product" -> "Product"
    return itemtype.strip().split()[0].rstrip("/").rsplit("/", 1)[-1] if itemtype.strip() else ""


def _itemprop_value(el: lxml.html.HtmlElement) -> str:
    content = el.get("content")
    if content:
        return content.strip()
    return (el.text_content() or "").strip()


def _first_itemprop(item: lxml.html.HtmlElement, prop: str) -> str:
    for el in item.iterdescendants():
        if not isinstance(el, lxml.html.HtmlElement):
            continue
        props = (el.get("itemprop") or "").split()
        if prop in props:
            return _itemprop_value(el)
    return ""


def _extract_json_ld(doc: lxml.html.HtmlElement) -> tuple[str, ...]:
    blocks: list[str] = []
    for el in doc.iter("script"):
        if (el.get("type") or "").strip().lower() != "application/ld+json":
            continue
        if el.text and el.text.strip():
            blocks.append(el.text.strip())
    return tuple(blocks)


def _extract_microdata(doc: lxml.html.HtmlElement) -> tuple[MicrodataItem, ...]:
    items: list[MicrodataItem] = []
    for el in doc.xpath("//*[@itemtype]"):
        items.append(
            MicrodataItem(
                itemtype=_short_itemtype(el.get("itemtype") or ""),
                name=sanitize_text(_first_itemprop(el, "name")),
                price=_first_itemprop(el, "price"),
                currency=_first_itemprop(el, "priceCurrency"),
            )
        )
    return tuple(items)


def _extract_meta(doc: lxml.html.HtmlElement) -> dict[str, str]:
    tags: dict[str, str] = {}
    for el in doc.iter("meta"):
        key = el.get("property") or el.get("name")
        content = el.get("content")
        if key and content is not None:
            tags.setdefault(key.strip().lower(), content.strip())
    return tags


def _field_label(form: lxml.html.HtmlElement, el: lxml.html.HtmlElement) -> str:
    aria = el.get("aria-label")
    if aria:
        return aria.strip()
    el_id = el.get("id")
    if el_id:
        for label in form.iter("label"):
            if label.get("for") == el_id:
                return (label.text_content() or "").strip()
    return ""


def _extract_forms(doc: lxml.html.HtmlElement) -> tuple[FormSnapshot, ...]:
    forms: list[FormSnapshot] = []
    for form in doc.iter("form"):
        fields = [
            FormField(
                name=el.get("name") or el.get("id") or "",
                type=(el.get("type") or el.tag).lower(),
                value=el.get("value") or "",
                placeholder=el.get("placeholder") or "",
                label=_field_label(form, el),
            )
            for el in form.iter(*_FIELD_TAGS)
        ]
        forms.append(FormSnapshot(action=form.get("action") or "", fields=fields))
    return tuple(forms)


def normalize_page(snapshot: PageSnapshot | Mapping[str, Any]) -> NormalizedContent:
    """Reduce a page snapshot to plain text and retained fragments."""
    if not isinstance(snapshot, PageSnapshot):
        snapshot = PageSnapshot.model_validate(dict(snapshot))

    markup = snapshot.markup or ""
    doc = _parse_markup(markup)

    json_ld: tuple[str, ...] = ()
    microdata: tuple[MicrodataItem, ...] = ()
    derived_meta: dict[str, str] = {}
    derived_forms: tuple[FormSnapshot, ...] = ()
    if doc is not None:
        json_ld = _extract_json_ld(doc)
        microdata = _extract_microdata(doc)
        derived_meta = _extract_meta(doc)
        derived_forms = _extract_forms(doc)

    text = snapshot.text.strip() if snapshot.text and snapshot.text.strip() else visible_text(markup)
    meta_tags = {**derived_meta, **{k.strip().lower(): v for k, v in snapshot.meta_tags.items()}}
    forms = tuple(snapshot.forms) if snapshot.forms else derived_forms

    return NormalizedContent(
        text=_WS_RE.sub(" ", text).strip(),
        markup=markup,
        url=snapshot.url.strip(),
        title=sanitize_text(snapshot.title),
        json_ld=json_ld,
        microdata=microdata,
        meta_tags=meta_tags,
        forms=forms,
        mode=ScanMode.PAGE,
    )


def content_from_email(message: ParsedEmailContent) -> NormalizedContent:
    """Email as scan content: subject and body as text, HTML body as markup."""
    body = message.body.strip() or visible_text(message.html_body)
    text = "\n".join(part for part in (message.subject.strip(), body) if part)
    doc = _parse_markup(message.html_body)
    return NormalizedContent(
        text=text,
        markup=message.html_body,
        title=sanitize_text(message.subject),
        json_ld=_extract_json_ld(doc) if doc is not None else (),
        microdata=_extract_microdata(doc) if doc is not None else (),
        meta_tags={},
        forms=(),
        mode=ScanMode.EMAIL,
    )


# --- email payloads ---


def _decode_base64url(data: str) -> str:
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as exc:
        logger.debug("Undecodable message body: %s", exc)
        return ""
    return raw.decode("utf-8", errors="replace")


def _parse_date(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) or (isinstance(value, str) and value.strip().isdigit()):
        try:
            ts = float(value)
            # Gmail internalDate is epoch milliseconds
            if ts > 1e11:
                ts /= 1000.0
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(value).strip()
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    try:
        return email.utils.parsedate_to_datetime(s)
    except (TypeError, ValueError, IndexError):
        return None


def _join_addresses(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, Mapping):
        return _join_addresses(value.get("address") or value.get("email") or value.get("emailAddress"))
    if isinstance(value, (list, tuple)):
        return ", ".join(a for a in (_join_addresses(v) for v in value) if a)
    return str(value)


def detect_platform(raw: Any) -> MailPlatform:
    """Guess the mail provider from the payload's shape."""
    if isinstance(raw, (bytes, bytearray, str)):
        return MailPlatform.RFC822
    if isinstance(raw, Mapping):
        if isinstance(raw.get("payload"), Mapping):
            return MailPlatform.GMAIL
        sender = raw.get("from")
        if isinstance(sender, Mapping) and "emailAddress" in sender:
            return MailPlatform.OUTLOOK
        if isinstance(raw.get("body"), Mapping) or "receivedDateTime" in raw:
            return MailPlatform.OUTLOOK
    return MailPlatform.GENERIC


def _walk_gmail_parts(part: Mapping[str, Any], found: dict[str, str], depth: int, max_depth: int) -> None:
    if depth > max_depth:
        logger.debug("Gmail part nesting deeper than %d, ignoring the rest", max_depth)
        return
    mime = str(part.get("mimeType") or "").lower()
    body = part.get("body")
    data = body.get("data") if isinstance(body, Mapping) else None
    if not isinstance(data, str):
        data = ""
    if data and mime in ("text/plain", "text/html") and mime not in found:
        found[mime] = _decode_base64url(data)
    elif data and not mime and "text/plain" not in found:
        found["text/plain"] = _decode_base64url(data)
    children = part.get("parts")
    if not isinstance(children, list):
        return
    for child in children:
        if isinstance(child, Mapping):
            _walk_gmail_parts(child, found, depth + 1, max_depth)


def _from_gmail(raw: Mapping[str, Any], max_depth: int) -> ParsedEmailContent:
    payload = raw.get("payload")
    if not isinstance(payload, Mapping):
        payload = {}
    raw_headers = payload.get("headers")
    headers = {
        str(h.get("name", "")).lower(): str(h.get("value", ""))
        for h in (raw_headers if isinstance(raw_headers, list) else ())
        if isinstance(h, Mapping)
    }
    found: dict[str, str] = {}
    _walk_gmail_parts(payload, found, 0, max_depth)
    return ParsedEmailContent(
        subject=headers.get("subject", ""),
        sender=headers.get("from", ""),
        to=headers.get("to", ""),
        body=found.get("text/plain", ""),
        html_body=found.get("text/html", ""),
        date=_parse_date(raw.get("internalDate")) or _parse_date(headers.get("date")),
    )


def _from_outlook(raw: Mapping[str, Any]) -> ParsedEmailContent:
    body = raw.get("body") or {}
    if isinstance(body, Mapping):
        content = str(body.get("content") or "")
        is_html = str(body.get("contentType") or "").lower() == "html" or bool(re.search(r"<[a-z][^>]*>", content, re.I))
    else:
        content, is_html = str(body), False
    return ParsedEmailContent(
        subject=str(raw.get("subject") or ""),
        sender=_join_addresses(raw.get("from")),
        to=_join_addresses(raw.get("toRecipients")),
        body="" if is_html else content,
        html_body=content if is_html else "",
        date=_parse_date(raw.get("receivedDateTime")),
    )


def _from_flat(raw: Mapping[str, Any]) -> ParsedEmailContent:
    html_body = str(raw.get("html_body") or raw.get("html") or raw.get("htmlBody") or "")
    return ParsedEmailContent(
        subject=str(raw.get("subject") or ""),
        sender=_join_addresses(raw.get("from") or raw.get("sender")),
        to=_join_addresses(raw.get("to")),
        body=str(raw.get("body") or raw.get("text") or ""),
        html_body=html_body,
        date=_parse_date(raw.get("date")),
    )


def _from_rfc822(raw: bytes | bytearray | str) -> ParsedEmailContent:
    if isinstance(raw, str):
        msg = email.message_from_string(raw, policy=email.policy.default)
    else:
        msg = email.message_from_bytes(bytes(raw), policy=email.policy.default)

    def _content(preference: str) -> str:
        part = msg.get_body(preferencelist=(preference,))
        if part is None:
            return ""
        try:
            return str(part.get_content())
        except (LookupError, ValueError) as exc:
            logger.debug("Undecodable %s part: %s", preference, exc)
            return ""

    return ParsedEmailContent(
        subject=str(msg.get("subject") or ""),
        sender=str(msg.get("from") or ""),
        to=str(msg.get("to") or ""),
        body=_content("plain"),
        html_body=_content("html"),
        date=_parse_date(msg.get("date")),
    )


def normalize_email(
    raw: Any,
    platform: MailPlatform | str | None = None,
    *,
    max_part_depth: int = 10,
) -> ParsedEmailContent:
    """Turn a provider payload (or raw RFC 822 message) into ``ParsedEmailContent``."""
    if isinstance(raw, ParsedEmailContent):
        return raw
    if raw is None:
        return ParsedEmailContent()

    kind = MailPlatform(platform) if platform else detect_platform(raw)
    if kind is MailPlatform.RFC822:
        if not isinstance(raw, (bytes, bytearray, str)):
            raise TypeError(f"rfc822 input must be bytes or str, got {type(raw).__name__}")
        return _from_rfc822(raw)
    if not isinstance(raw, Mapping):
        raise TypeError(f"{kind} payload must be a mapping, got {type(raw).__name__}")
    if kind is MailPlatform.GMAIL:
        return _from_gmail(raw, max_part_depth)
    if kind is MailPlatform.OUTLOOK:
        return _from_outlook(raw)
    return _from_flat(raw)
