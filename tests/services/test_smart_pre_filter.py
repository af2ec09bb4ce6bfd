"""
Unit tests for the smart pre-filter rule table.
"""

import pytest

from factories import T0, make_event
from models.raw_event import EventSource
from services.ingestion.pre_filter import (
    ConfidenceTier,
    FilterConfig,
    SmartPreFilter,
    build_email_rules,
)


@pytest.fixture
def pre_filter():
    return SmartPreFilter()


class TestEmailRules:
    def test_rule_order(self):
        names = [rule.name for rule in build_email_rules(FilterConfig())]
        assert names == [
            "high_confidence_subject",
            "billing_keyword",
            "receipt_from_merchant",
            "renewal_language",
            "one_time_purchase",
            "marketing",
            "payment_confirmation",
            "known_merchant_domain",
        ]

    def test_high_confidence_subject(self, pre_filter):
        decision = pre_filter.evaluate_email("Your Subscription has been renewed", "", "")
        assert decision.keep
        assert decision.confidence == ConfidenceTier.HIGH
        assert decision.reason == "Subject contains 'subscription'"

    def test_subject_keyword_beats_marketing(self, pre_filter):
        decision = pre_filter.evaluate_email("Subscription: 50% off your next year", "limited time", "")
        assert decision.keep

    def test_amount_optional_billing_keyword(self, pre_filter):
        decision = pre_filter.evaluate_email("Your invoice", "", "")
        assert decision.keep
        assert decision.reason == "Subject has billing keyword 'invoice'"

    def test_amount_required_billing_keyword_without_amount(self, pre_filter):
        decision = pre_filter.evaluate_email("Billing update", "We changed our terms.", "")
        assert not decision.keep
        assert decision.confidence == ConfidenceTier.LOW

    def test_amount_required_billing_keyword_with_amount(self, pre_filter):
        decision = pre_filter.evaluate_email("Billing update", "Total: $9.99", "")
        assert decision.keep
        assert decision.reason == "Subject has billing keyword 'billing'"

    def test_renewal_language_in_body(self, pre_filter):
        decision = pre_filter.evaluate_email("Hello", "Your membership renews on March 3.", "")
        assert decision.keep
        assert decision.confidence == ConfidenceTier.HIGH
        assert decision.reason.startswith("Body matches renewal pattern")

    def test_one_time_purchase_is_rejected(self, pre_filter):
        decision = pre_filter.evaluate_email("Order shipped", "Tracking number 1Z999", "")
        assert not decision.keep
        assert decision.confidence == ConfidenceTier.HIGH
        assert decision.reason == "One-time purchase indicator: 'order shipped'"

    def test_subscription_mention_overrides_one_time_exclusion(self, pre_filter):
        decision = pre_filter.evaluate_email("Order confirmation", "Thanks for joining our subscription box", "")
        assert not decision.reason.startswith("One-time purchase")

    def test_marketing_is_rejected(self, pre_filter):
        decision = pre_filter.evaluate_email("Flash sale: 50% off everything", "", "")
        assert not decision.keep
        assert decision.reason == "Marketing email: 'flash sale'"

    def test_percent_off_pattern(self, pre_filter):
        decision = pre_filter.evaluate_email("Today only", "Get 30% off", "")
        assert not decision.keep
        assert decision.reason.startswith("Marketing email")

    def test_payment_confirmation_with_amount(self, pre_filter):
        decision = pre_filter.evaluate_email("Thanks", "Thank you for your payment of $20.00", "")
        assert decision.keep
        assert decision.confidence == ConfidenceTier.MEDIUM

    def test_known_merchant_domain_with_amount(self, pre_filter):
        decision = pre_filter.evaluate_email("Your account", "Charged $20.00", "OpenAI <noreply@tm.openai.com>")
        assert decision.keep
        assert decision.confidence == ConfidenceTier.MEDIUM
        assert decision.reason == "Known subscription merchant (openai.com) + amount"

    def test_known_merchant_domain_needs_amount(self, pre_filter):
        decision = pre_filter.evaluate_email("Your account", "Welcome aboard", "noreply@openai.com")
        assert not decision.keep

    def test_lookalike_domain_is_not_known(self, pre_filter):
        decision = pre_filter.evaluate_email("Your account", "Charged $5.00", "billing@notx.com")
        assert not decision.keep
        assert decision.reason == "No strong subscription indicators found"

    def test_custom_config(self):
        config = FilterConfig(high_confidence_subject_keywords=("tithe",))
        decision = SmartPreFilter(config).evaluate_email("Monthly tithe", "", "")
        assert decision.keep
        assert decision.reason == "Subject contains 'tithe'"


class TestTransactions:
    def test_debit_is_kept(self, pre_filter):
        decision = pre_filter.evaluate(make_event("tx-1", T0, "9.99"))
        assert decision.keep
        assert decision.confidence == ConfidenceTier.MEDIUM

    @pytest.mark.parametrize("amount", ["-9.99", "0"])
    def test_refunds_and_zero_amounts_are_rejected(self, pre_filter, amount):
        decision = pre_filter.evaluate(make_event("tx-1", T0, amount))
        assert not decision.keep
        assert decision.reason == "non-debit transaction"


class TestFilterBatch:
    def test_stats(self, pre_filter):
        subscription_email = make_event("m-1", T0, source=EventSource.EMAIL).model_copy(update={
            'subject_or_description': "Your subscription receipt",
        })
        marketing_email = make_event("m-2", T0, source=EventSource.EMAIL).model_copy(update={
            'subject_or_description': "Black Friday deals",
            'body_or_merchant_string': "Everything must go",
        })
        debit = make_event("tx-1", T0)
        refund = make_event("tx-2", T0, "-4.00")

        result = pre_filter.filter_batch([subscription_email, marketing_email, debit, refund])

        assert [e.raw_identifier for e in result.kept] == ["m-1", "tx-1"]
        assert result.stats == {
            'total': 4,
            'kept': 2,
            'filtered': 2,
            'high_confidence': 1,
            'medium_confidence': 1,
        }
