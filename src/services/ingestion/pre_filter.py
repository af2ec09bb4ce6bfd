"""
Smart pre-filter for raw payment records.

Cheap, rule-based gate that runs before any costly parsing or scoring.
Email rules are an ordered table of (matcher, verdict, confidence tier);
the first rule whose matcher fires decides the record.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from models.raw_event import EventSource, RawEvent
from services.ingestion.merchant_resolver import sender_domain

logger = logging.getLogger(__name__)


class ConfidenceTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class FilterConfig:
    """
    Keyword and pattern lists driving the email rules.

    Patterns are regular expressions matched case-insensitively; keywords
    are plain lower-case substrings.
    """

    high_confidence_subject_keywords: Tuple[str, ...] = (
        "subscription",
        "recurring payment",
        "auto-renewal",
        "membership renewal",
        "plan renewed",
        "subscription renewed",
        "your plan",
        "premium plan",
        "pro plan",
    )

    billing_keywords_amount_optional: Tuple[str, ...] = (
        "invoice",
        "receipt",
        "payment received",
    )

    billing_keywords_amount_required: Tuple[str, ...] = (
        "billing",
        "payment",
    )

    receipt_subject_patterns: Tuple[str, ...] = (
        r"\breceipt from\s+\S+",
    )

    renewal_patterns: Tuple[str, ...] = (
        r"next\s+(billing|payment|charge)",
        r"renew(s|al|ed)?\s+on",
        r"automatic\s+(billing|payment|renewal)",
        r"monthly\s+(subscription|plan|payment)",
        r"annual\s+(subscription|plan|payment)",
        r"will\s+(be\s+)?charged\s+on",
        r"subscription\s+(will\s+)?renew",
    )

    exclusion_keywords: Tuple[str, ...] = (
        "order shipped",
        "tracking number",
        "delivery update",
        "out for delivery",
        "package delivered",
        "return your order",
        "order confirmation",
    )

    exclusion_override_keyword: str = "subscription"

    marketing_patterns: Tuple[str, ...] = (
        r"special offer",
        r"limited time",
        r"sale ends",
        r"flash sale",
        r"exclusive deal",
        r"\d+% off",
        r"summer sale",
        r"winter sale",
        r"black friday",
        r"cyber monday",
        r"discount",
        r"save \$",
        r"limited-time deal",
        r"pay only [$£€]\d+",
    )

    payment_confirmation_phrases: Tuple[str, ...] = (
        "thank you for your payment",
        "payment received",
    )

    known_merchant_domains: Tuple[str, ...] = (
        "openai.com",
        "anthropic.com",
        "perplexity.ai",
        "cursor.sh",
        "spotify.com",
        "netflix.com",
        "github.com",
        "vercel.com",
        "patreon.com",
        "surfshark.com",
        "x.com",
        "twitter.com",
        "telegram.org",
        "t.me",
    )

    amount_pattern: str = r"[$£€]\d+(\.\d{2})?"


@dataclass(frozen=True)
class FilterDecision:
    keep: bool
    confidence: ConfidenceTier
    reason: str


@dataclass(frozen=True)
class FilterInput:
    """Lower-cased view of a record as the rules see it."""
    subject: str
    body: str
    sender: str
    has_amount: bool


RuleMatcher = Callable[[FilterInput], Optional[str]]


@dataclass(frozen=True)
class FilterRule:
    """
    One row of the rule table.

    matcher returns the matched term (used in the reason) or None.
    """
    name: str
    matcher: RuleMatcher
    keep: bool
    confidence: ConfidenceTier
    reason: str

    def apply(self, record: FilterInput) -> Optional[FilterDecision]:
        term = self.matcher(record)
        if term is None:
            return None
        return FilterDecision(keep=self.keep, confidence=self.confidence, reason=self.reason.format(term=term))


def _first_keyword(keywords: Sequence[str], text: str) -> Optional[str]:
    for keyword in keywords:
        if keyword in text:
            return keyword
    return None


def _first_pattern(patterns: Sequence[re.Pattern], *texts: str) -> Optional[str]:
    for pattern in patterns:
        if any(pattern.search(text) for text in texts):
            return pattern.pattern
    return None


def _domain_matches(domain: str, known: str) -> bool:
    return domain == known or domain.endswith("." + known)


def build_email_rules(config: FilterConfig) -> List[FilterRule]:
    """Build the email rule table in priority order."""
    receipt_patterns = [re.compile(p, re.IGNORECASE) for p in config.receipt_subject_patterns]
    renewal_patterns = [re.compile(p, re.IGNORECASE) for p in config.renewal_patterns]
    marketing_patterns = [re.compile(p, re.IGNORECASE) for p in config.marketing_patterns]

    def billing_keyword(r: FilterInput) -> Optional[str]:
        optional = _first_keyword(config.billing_keywords_amount_optional, r.subject)
        if optional:
            return optional
        required = _first_keyword(config.billing_keywords_amount_required, r.subject)
        if required and r.has_amount:
            return required
        return None

    def one_time_purchase(r: FilterInput) -> Optional[str]:
        keyword = _first_keyword(config.exclusion_keywords, r.subject) or _first_keyword(config.exclusion_keywords, r.body)
        override = config.exclusion_override_keyword
        if keyword and override not in r.subject and override not in r.body:
            return keyword
        return None

    def payment_confirmation(r: FilterInput) -> Optional[str]:
        phrase = _first_keyword(config.payment_confirmation_phrases, r.body)
        return phrase if phrase and r.has_amount else None

    def known_merchant(r: FilterInput) -> Optional[str]:
        if not r.has_amount:
            return None
        domain = sender_domain(r.sender)
        for known in config.known_merchant_domains:
            if _domain_matches(domain, known):
                return known
        return None

    return [
        FilterRule(
            "high_confidence_subject",
            lambda r: _first_keyword(config.high_confidence_subject_keywords, r.subject),
            True, ConfidenceTier.HIGH, "Subject contains '{term}'",
        ),
        FilterRule("billing_keyword", billing_keyword, True, ConfidenceTier.HIGH, "Subject has billing keyword '{term}'"),
        FilterRule(
            "receipt_from_merchant",
            lambda r: _first_pattern(receipt_patterns, r.subject),
            True, ConfidenceTier.HIGH, "Receipt email from merchant",
        ),
        FilterRule(
            "renewal_language",
            lambda r: _first_pattern(renewal_patterns, r.body),
            True, ConfidenceTier.HIGH, "Body matches renewal pattern: {term}",
        ),
        FilterRule("one_time_purchase", one_time_purchase, False, ConfidenceTier.HIGH, "One-time purchase indicator: '{term}'"),
        FilterRule(
            "marketing",
            lambda r: _first_pattern(marketing_patterns, r.subject, r.body),
            False, ConfidenceTier.HIGH, "Marketing email: '{term}'",
        ),
        FilterRule("payment_confirmation", payment_confirmation, True, ConfidenceTier.MEDIUM, "Payment confirmation with amount"),
        FilterRule("known_merchant_domain", known_merchant, True, ConfidenceTier.MEDIUM, "Known subscription merchant ({term}) + amount"),
    ]


NO_SIGNAL = FilterDecision(keep=False, confidence=ConfidenceTier.LOW, reason="No strong subscription indicators found")


@dataclass
class FilterBatchResult:
    kept: List[RawEvent] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=lambda: {
        'total': 0,
        'kept': 0,
        'filtered': 0,
        'high_confidence': 0,
        'medium_confidence': 0,
    })


class SmartPreFilter:
    """
    Pure classifier deciding whether a record is worth scoring.

    Emails go through the rule table. Transactions are kept when they are
    outflows (positive amounts); refunds and credits never bill on a cycle.
    """

    def __init__(self, config: Optional[FilterConfig] = None):
        self.config = config or FilterConfig()
        self.rules = build_email_rules(self.config)
        self._amount = re.compile(self.config.amount_pattern)

    def evaluate_email(self, subject: str, body: str, sender: str) -> FilterDecision:
        subject = (subject or "").lower()
        body = (body or "").lower()
        record = FilterInput(
            subject=subject,
            body=body,
            sender=(sender or "").lower(),
            has_amount=bool(self._amount.search(body) or self._amount.search(subject)),
        )
        for rule in self.rules:
            decision = rule.apply(record)
            if decision is not None:
                return decision
        return NO_SIGNAL

    def evaluate_transaction(self, event: RawEvent) -> FilterDecision:
        if event.amount.amount <= 0:
            return FilterDecision(keep=False, confidence=ConfidenceTier.HIGH, reason="non-debit transaction")
        return FilterDecision(keep=True, confidence=ConfidenceTier.MEDIUM, reason="debit transaction")

    def evaluate(self, event: RawEvent) -> FilterDecision:
        if event.source == EventSource.EMAIL:
            return self.evaluate_email(
                event.subject_or_description,
                event.body_or_merchant_string,
                event.sender_or_account_ref,
            )
        return self.evaluate_transaction(event)

    def filter_batch(self, events: Iterable[RawEvent]) -> FilterBatchResult:
        result = FilterBatchResult()
        for event in events:
            result.stats['total'] += 1
            decision = self.evaluate(event)
            if not decision.keep:
                logger.debug(f"Filtered {event.raw_identifier}: {decision.reason}")
                continue
            result.kept.append(event)
            result.stats['kept'] += 1
            if decision.confidence == ConfidenceTier.HIGH:
                result.stats['high_confidence'] += 1
            elif decision.confidence == ConfidenceTier.MEDIUM:
                result.stats['medium_confidence'] += 1
        result.stats['filtered'] = result.stats['total'] - result.stats['kept']
        logger.info(
            f"Pre-filter kept {result.stats['kept']}/{result.stats['total']} records "
            f"({result.stats['high_confidence']} high, {result.stats['medium_confidence']} medium)"
        )
        return result
