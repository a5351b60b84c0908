"""
Unit Tests for Plan Resolver
============================

Tests:
1. Credits parsed from the trailing plan-name token
2. Unlimited sentinel handling
3. Admin credit value parsing
"""

import pytest

from credit_wallet.config import UNLIMITED
from credit_wallet.plan_resolver import (
    parse_credits_from_plan,
    credits_for_plan,
    is_unlimited,
    parse_credit_value,
    plan_display_name,
)


class TestPlanParsing:
    """Credits come from the token after the last underscore."""

    def test_numeric_with_thousands_separator(self):
        assert parse_credits_from_plan("Standard_Monthly_5,000") == 5000

    def test_unlimited_any_case(self):
        assert parse_credits_from_plan("Enterprise_Yearly_unlimited") == UNLIMITED
        assert parse_credits_from_plan("Enterprise_Yearly_UNLIMITED") == UNLIMITED

    def test_unparseable_plan_grants_zero(self):
        assert parse_credits_from_plan("Custom_Plan_TBD") is None
        assert credits_for_plan("Custom_Plan_TBD") == 0

    def test_empty_plan(self):
        assert parse_credits_from_plan("") is None
        assert credits_for_plan(None) == 0

    def test_display_name(self):
        assert plan_display_name("Standard_Monthly_5,000") == "Standard"


class TestCreditValues:
    """Admin-supplied absolute credit values."""

    def test_is_unlimited(self):
        assert is_unlimited("Unlimited")
        assert is_unlimited("unlimited")
        assert not is_unlimited(0)
        assert not is_unlimited("100")

    def test_parse_numbers(self):
        assert parse_credit_value(0) == 0
        assert parse_credit_value("1,500") == 1500

    def test_parse_unlimited(self):
        assert parse_credit_value("UNLIMITED") == UNLIMITED

    @pytest.mark.parametrize("raw", [-1, "-5", "abc", None, True])
    def test_rejects_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_credit_value(raw)
