"""
Unit Tests for the Fee Waterfall
=================================
"""

import pytest
from datetime import timedelta

from conftest import ts
from fees import (platform_fee, participation_fee, request_fees, platform_outstanding,
                  investor_fees, invoice_totals)
from models import FinanceTerms, LineItem


class TestContractorFees:
    """Platform and participation fees on funded capital."""

    def test_platform_fee_rate(self, default_terms):
        assert platform_fee(1_000_000, default_terms) == pytest.approx(2500.0)

    def test_platform_fee_cap(self, default_terms):
        assert platform_fee(50_000_000, default_terms) == 25000.0

    def test_participation_fee_accrual(self, default_terms):
        assert participation_fee(1_000_000, default_terms, 30) == pytest.approx(30000.0)

    def test_request_fees_whole_days(self, default_terms):
        t0 = ts(2024, 1, 1)
        fees = request_fees(1_000_000, t0, t0 + timedelta(days=30, hours=23), default_terms)
        assert fees.days_outstanding == 30
        assert fees.total_due == pytest.approx(1_000_000 + 2500 + 30000)

    def test_no_deployment_means_no_days(self, default_terms):
        fees = request_fees(0.0, None, ts(2024, 6, 1), default_terms)
        assert fees.days_outstanding == 0
        assert fees.total_due == 0.0

    def test_as_of_before_deployment(self, default_terms):
        fees = request_fees(100.0, ts(2024, 6, 1), ts(2024, 5, 1), default_terms)
        assert fees.days_outstanding == 0
        assert fees.participation_fee == 0.0

    def test_custom_terms(self):
        terms = FinanceTerms(platform_fee_rate=0.01, platform_fee_cap=500,
                             participation_fee_rate_daily=0.0)
        fees = request_fees(100_000, ts(2024, 1, 1), ts(2024, 2, 1), terms)
        assert fees.platform_fee == 500
        assert fees.participation_fee == 0.0

    def test_platform_outstanding(self, default_terms):
        t0 = ts(2024, 1, 1)
        fees = request_fees(1_000_000, t0, t0 + timedelta(days=10), default_terms)
        assert platform_outstanding(fees, 400_000) == pytest.approx(fees.total_due - 400_000)
        assert platform_outstanding(fees, 5_000_000) == 0.0


class TestInvestorFees:
    """Management and performance fees."""

    def test_below_hurdle(self):
        fees = investor_fees(100_000, 110_000)
        assert fees.management_fee == pytest.approx(2000)
        assert fees.performance_fee == 0.0
        assert fees.net_capital_returns == pytest.approx(108_000)

    def test_above_hurdle(self):
        fees = investor_fees(100_000, 150_000)
        # profit 50,000, hurdle 12,000 -> 20% of 38,000
        assert fees.performance_fee == pytest.approx(7600)
        assert fees.total_fees == pytest.approx(9600)
        assert fees.net_capital_returns == pytest.approx(140_400)

    def test_net_returns_floored(self):
        fees = investor_fees(100_000, 0)
        assert fees.net_capital_returns == 0.0
        assert fees.gross_profit == -100_000


class TestInvoiceTotals:

    def test_invoice_matches_request_platform_fee(self, default_terms):
        items = [LineItem("pr-1", 400, 1000, tax_percent=18), LineItem("pr-1", 600, 1000)]
        invoice = invoice_totals(items, default_terms)
        assert invoice['subtotal'] == 1_000_000
        assert invoice['total_tax'] == pytest.approx(72_000)
        assert invoice['grand_total'] == pytest.approx(1_072_000)

        fees = request_fees(1_000_000, ts(2024, 1, 1), ts(2024, 1, 2), default_terms)
        assert round(invoice['platform_fee'], 2) == round(fees.platform_fee, 2)
