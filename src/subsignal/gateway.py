# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Payment gateway / commerce platform classification for billing email.

The sender, subject and body are scored against every registered entry::

    score = (0.6 * [sender matches] + 0.3 * [subject/body matches] + 0.1 * [keyword in body])
            * entry multiplier

The highest score above ``gateway_threshold`` wins; an exact tie keeps the
earlier-registered entry. The winner selects the specialized extraction:
email type and status, invoice total, merchant, identifiers.

Emails no entry claims go through the generic page pipeline instead (see
:mod:`subsignal.engine`); the type, status and identifier helpers here are
shared by both paths.
"""

from __future__ import annotations

import email.utils
import logging
import re
from dataclasses import dataclass

from subsignal import EmailDetection, EmailMetadata
from subsignal.config import DetectorConfig
from subsignal.extractors.billing_cycle import detect_cycles
from subsignal.extractors.merchant import match_merchants
from subsignal.extractors.price import find_amounts
from subsignal.knowledge_base import EMAIL_TYPE_ORDER, ID_FIELDS, GatewayEntry, KnowledgeBase
from subsignal.normalizer import ParsedEmailContent, ScanMode, visible_text
from subsignal.sanitizer import clean_entity_name
from subsignal.signals import clamp_confidence

logger = logging.getLogger(__name__)

# ── Score weights ─────────────────────────────────────────────────────

SENDER_WEIGHT = 0.6
SUBJECT_WEIGHT = 0.3
KEYWORD_WEIGHT = 0.1

# ── Email type → payment status ───────────────────────────────────────

EMAIL_STATUS: dict[str, str] = {
    "payment_failed": "failed",
    "refund": "refunded",
    "dispute": "disputed",
    "subscription_update": "pending",
    "trial_ending": "pending",
    "receipt": "success",
    "invoice": "success",
}

# "Your receipt from Acme Co - $49.00" -> "Acme Co"
_FROM_MERCHANT_RE = re.compile(
    r"\bfrom\s+(?P<name>[^\s$€£¥₹].*?)(?=\s*[-–—|:(#]|\s+[$€£¥₹]|\s+(?:for|on|via|at)\b|[.!,]\s|[.!,]?$)",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class GatewayMatch:
    entry: GatewayEntry
    score: float
    sender_matched: bool
    subject_matched: bool
    keyword_matched: bool

    @property
    def name(self) -> str:
        return self.entry.name


def email_body_text(message: ParsedEmailContent) -> str:
    """Plain body, or the visible text of the HTML body when there is none."""
    return message.body.strip() or visible_text(message.html_body)


class GatewayClassifier:
    """Scores billing email against the knowledge base's gateway table."""

    def __init__(self, knowledge_base: KnowledgeBase, config: DetectorConfig | None = None) -> None:
        self.knowledge_base = knowledge_base
        self.config = config or DetectorConfig()

    # ── classification ────────────────────────────────────────────────

    def score_entry(self, entry: GatewayEntry, message: ParsedEmailContent, body: str | None = None) -> GatewayMatch:
        body = email_body_text(message) if body is None else body
        sender = message.sender
        subject = message.subject

        sender_matched = bool(sender) and any(p.search(sender) for p in entry.sender_patterns)
        subject_matched = any(p.search(subject) or p.search(body) for p in entry.subject_patterns)
        lowered = body.lower()
        keyword_matched = any(k in lowered for k in entry.keywords)

        raw = (
            SENDER_WEIGHT * sender_matched
            + SUBJECT_WEIGHT * subject_matched
            + KEYWORD_WEIGHT * keyword_matched
        )
        return GatewayMatch(
            entry=entry,
            score=round(raw * entry.multiplier, 9),
            sender_matched=sender_matched,
            subject_matched=subject_matched,
            keyword_matched=keyword_matched,
        )

    def classify(self, message: ParsedEmailContent) -> GatewayMatch | None:
        """Best entry scoring above the gateway threshold, or None."""
        body = email_body_text(message)
        best: GatewayMatch | None = None
        for entry in self.knowledge_base.gateways:
            match = self.score_entry(entry, message, body)
            if match.score <= self.config.gateway_threshold:
                continue
            # strict ">" keeps the earlier entry on an exact tie
            if best is None or match.score > best.score:
                best = match
        if best is not None:
            logger.debug("Gateway %s matched with score %.3f", best.name, best.score)
        return best

    def is_payment_receipt(self, message: ParsedEmailContent) -> bool:
        match = self.classify(message)
        return match is not None and match.score > self.config.receipt_threshold

    def supported_gateways(self) -> list[str]:
        return [entry.name for entry in self.knowledge_base.gateways]

    # ── shared rules ──────────────────────────────────────────────────

    def email_type(self, subject: str, entry: GatewayEntry | None = None) -> str:
        """Failure, refund, dispute, trial, update, invoice in that order; default receipt."""
        shared = self.knowledge_base.email_type_patterns
        for email_type in EMAIL_TYPE_ORDER:
            own = entry.subject_patterns_by_type.get(email_type, ()) if entry else ()
            if any(p.search(subject) for p in (*own, *shared.get(email_type, ()))):
                return email_type
        return "receipt"

    def identifiers(self, text: str, entry: GatewayEntry | None = None) -> dict[str, str]:
        """Identifier fields found in ``text``; the entry's own patterns win over the defaults."""
        defaults = self.knowledge_base.default_id_patterns
        found: dict[str, str] = {}
        for field_name in ID_FIELDS:
            pattern = (entry.id_patterns.get(field_name) if entry else None) or defaults.get(field_name)
            if pattern is None:
                continue
            m = pattern.search(text)
            if m:
                value = next((g for g in m.groups() if g), m.group(0))
                found[field_name] = value.strip().rstrip(".,;)\"'>")
        return found

    @staticmethod
    def customer_email(message: ParsedEmailContent) -> str | None:
        _, address = email.utils.parseaddr(message.to.split(",")[0]) if message.to else ("", "")
        return address or None

    # ── specialized extraction ────────────────────────────────────────

    def _merchant(self, text: str, subject: str, gateway_name: str) -> str | None:
        for entry in match_merchants(text, self.knowledge_base.merchants):
            if entry.canonical_name.lower() != gateway_name.lower():
                return entry.canonical_name
        m = _FROM_MERCHANT_RE.search(subject)
        if m:
            name = clean_entity_name(m.group("name"))
            if name and name.lower() != gateway_name.lower():
                return name
        return None

    def analyze(self, message: ParsedEmailContent, match: GatewayMatch) -> EmailDetection:
        """Apply the winning entry's rules to the email."""
        entry = match.entry
        body = email_body_text(message)
        text = "\n".join(t for t in (message.subject, body) if t)

        email_type = self.email_type(message.subject, entry)
        amounts = find_amounts(
            text,
            mode=ScanMode.EMAIL,
            ceiling=self.config.email_amount_ceiling,
            default_currency=self.config.default_currency,
        )
        top = max(amounts, key=lambda a: a.amount) if amounts else None
        merchant = self._merchant(text, message.subject, entry.name)
        cycles = detect_cycles(text)
        ids = self.identifiers("\n".join(t for t in (text, message.html_body) if t), entry)

        confidence = clamp_confidence(
            0.5
            + 0.3 * match.sender_matched
            + 0.2 * (top is not None)
            + 0.2 * (merchant is not None)
            + 0.1 * (email_type in ("receipt", "invoice"))
        )

        return EmailDetection(
            gateway=entry.name,
            gateway_kind=str(entry.kind),
            gateway_confidence=match.score,
            type=email_type,
            status=EMAIL_STATUS[email_type],
            merchant_name=merchant,
            amount=top.amount if top else None,
            currency=top.currency if top else self.config.default_currency,
            billing_cycle=str(cycles[0][0]) if cycles else None,
            subscription_id=ids.get("subscription_id"),
            customer_id=ids.get("customer_id"),
            date=message.date,
            confidence=round(confidence, 9),
            metadata=EmailMetadata(
                event_id=ids.get("event_id"),
                invoice_id=ids.get("invoice_id"),
                receipt_url=ids.get("receipt_url"),
                customer_email=self.customer_email(message),
                transaction_id=ids.get("transaction_id"),
            ),
        )
