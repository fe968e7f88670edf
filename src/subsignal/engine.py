# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SubscriptionDetector: the detection pipeline end to end.

Page:  normalize -> extract -> context -> score -> assemble
Email: normalize -> gateway -> (specialized rules | generic page pipeline)

The detector holds only immutable tables and settings, so one instance can
serve any number of threads. Detection never raises for bad or empty input:
the answer is then a zero-confidence result.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from concurrent.futures import Executor
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from subsignal import EmailDetection, EmailMetadata, SubscriptionCandidate
from subsignal.assembler import assemble_candidate, empty_candidate
from subsignal.config import DetectorConfig
from subsignal.context import DocumentContext, build_context, classify_page_type
from subsignal.extractors import EXTRACTORS, ExtractorDef, ScanEnv, run_extractors
from subsignal.gateway import EMAIL_STATUS, GatewayClassifier
from subsignal.knowledge_base import KnowledgeBase, load_knowledge_base
from subsignal.logging_config import scan_context
from subsignal.normalizer import (
    MailPlatform,
    NormalizedContent,
    PageSnapshot,
    ParsedEmailContent,
    content_from_email,
    normalize_email,
    normalize_page,
)
from subsignal.pipeline_timer import PipelineTimer
from subsignal.scoring import ScoringResult, score_signals

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SubscriptionDetector:
    """Turns page snapshots and billing email into subscription guesses.

    Args:
        knowledge_base: Merchant and gateway tables (default: packaged tables).
        config: Thresholds and limits (default: ``DetectorConfig()``).
        executor: Optional executor to run the extractors concurrently.
        clock: Returns the timestamp stamped on candidates.
    """

    def __init__(
        self,
        knowledge_base: KnowledgeBase | None = None,
        config: DetectorConfig | None = None,
        *,
        executor: Executor | None = None,
        clock: Callable[[], datetime] = _utcnow,
        extractors: tuple[ExtractorDef, ...] = EXTRACTORS,
    ) -> None:
        self.knowledge_base = knowledge_base if knowledge_base is not None else load_knowledge_base()
        self.config = config if config is not None else DetectorConfig()
        self.gateways = GatewayClassifier(self.knowledge_base, self.config)
        self._env = ScanEnv(knowledge_base=self.knowledge_base, config=self.config)
        self._executor = executor
        self._clock = clock
        self._extractors = extractors

    # ── generic pipeline ──────────────────────────────────────────────

    def analyze(self, content: NormalizedContent) -> tuple[DocumentContext, ScoringResult]:
        """Extract, build context and score; the inputs to candidate assembly."""
        signals = run_extractors(content, self._env, extractors=self._extractors, executor=self._executor)
        context = build_context(content)
        return context, score_signals(signals, context, self.config)

    def scan(self, content: NormalizedContent, timer: PipelineTimer | None = None) -> SubscriptionCandidate:
        """Run the generic pipeline over already-normalized content."""
        timer = timer or PipelineTimer()
        now = self._clock()
        if content.is_empty:
            logger.info("Nothing to scan: content has neither text nor markup")
            return empty_candidate(
                url=content.url,
                timestamp=now,
                default_currency=self.config.default_currency,
                page_type=str(classify_page_type(content.url, content.title)),
            )

        timer.stage("extract")
        signals = run_extractors(content, self._env, extractors=self._extractors, executor=self._executor)
        timer.stage("context")
        context = build_context(content)
        timer.stage("score")
        result = score_signals(signals, context, self.config)
        timer.stage("assemble")
        candidate = assemble_candidate(
            result,
            context,
            url=content.url,
            timestamp=now,
            default_currency=self.config.default_currency,
        )
        logger.debug(
            "Scanned %s: %d signals, %d confirmed, confidence %.3f",
            content.mode,
            result.signal_count,
            len(result.confirmed),
            result.overall,
        )
        return candidate

    # ── pages ─────────────────────────────────────────────────────────

    def detect_page(self, snapshot: PageSnapshot | Mapping[str, Any]) -> SubscriptionCandidate:
        """Scan one page snapshot. Always returns a candidate."""
        timer = PipelineTimer()
        url = snapshot.url if isinstance(snapshot, PageSnapshot) else str(snapshot.get("url") or "")
        with scan_context(variant="page", url=url):
            try:
                timer.stage("normalize")
                try:
                    content = normalize_page(snapshot)
                except (ValidationError, TypeError, ValueError) as exc:
                    logger.warning("Unusable page snapshot: %s", exc)
                    return empty_candidate(
                        url=url, timestamp=self._clock(), default_currency=self.config.default_currency
                    )
                return self.scan(content, timer)
            finally:
                timer.finalize()
                logger.debug("Page scan timings: %s", timer.summary())

    # ── email ─────────────────────────────────────────────────────────

    def _empty_email(self, message: ParsedEmailContent | None = None) -> EmailDetection:
        return EmailDetection(currency=self.config.default_currency, date=message.date if message else None)

    def _generic_email(self, message: ParsedEmailContent, timer: PipelineTimer) -> EmailDetection:
        candidate = self.scan(content_from_email(message), timer)
        email_type = self.gateways.email_type(message.subject)
        text = "\n".join(t for t in (message.subject, message.body, message.html_body) if t)
        ids = self.gateways.identifiers(text)
        return EmailDetection(
            type=email_type,
            status=EMAIL_STATUS[email_type],
            merchant_name=candidate.merchant_name,
            amount=candidate.amount,
            currency=candidate.currency,
            billing_cycle=candidate.cycle,
            subscription_id=ids.get("subscription_id"),
            customer_id=ids.get("customer_id"),
            date=message.date,
            confidence=candidate.confidence,
            metadata=EmailMetadata(
                event_id=ids.get("event_id"),
                invoice_id=ids.get("invoice_id"),
                receipt_url=ids.get("receipt_url"),
                customer_email=self.gateways.customer_email(message),
                transaction_id=ids.get("transaction_id"),
            ),
        )

    def detect_email(self, message: ParsedEmailContent | Mapping[str, Any]) -> EmailDetection:
        """Scan one parsed email. Always returns a detection."""
        timer = PipelineTimer()
        with scan_context(variant="email"):
            try:
                timer.stage("normalize")
                if not isinstance(message, ParsedEmailContent):
                    try:
                        message = ParsedEmailContent.model_validate(dict(message))
                    except (ValidationError, TypeError, ValueError) as exc:
                        logger.warning("Unusable email content: %s", exc)
                        return self._empty_email()
                if message.is_empty:
                    logger.info("Nothing to scan: email has no subject or body")
                    return self._empty_email(message)

                timer.stage("gateway")
                match = self.gateways.classify(message)
                if match is None:
                    return self._generic_email(message, timer)
                timer.stage("assemble")
                return self.gateways.analyze(message, match)
            finally:
                timer.finalize()
                logger.debug("Email scan timings: %s", timer.summary())

    def detect_raw_email(self, raw: Any, platform: MailPlatform | str | None = None) -> EmailDetection:
        """Normalize a provider payload (Gmail, Outlook, flat dict, RFC 822) and scan it."""
        try:
            message = normalize_email(raw, platform, max_part_depth=self.config.max_email_part_depth)
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("Unusable email payload: %s", exc)
            return self._empty_email()
        return self.detect_email(message)

    def is_payment_receipt(self, message: ParsedEmailContent | Mapping[str, Any]) -> bool:
        if not isinstance(message, ParsedEmailContent):
            message = ParsedEmailContent.model_validate(dict(message))
        return self.gateways.is_payment_receipt(message)

    def supported_gateways(self) -> list[str]:
        return self.gateways.supported_gateways()
