"""
Unit Tests for XIRR
====================
"""

import numpy as np
import pytest
from datetime import timedelta

from conftest import ts
from metrics import solve_xirr, xirr, xnpv, net_cashflows, gross_and_net_xirr, has_sign_change
from models import CashflowPoint


class TestSolver:
    """Newton-Raphson XIRR."""

    def test_two_flows_one_year(self):
        cfs = [(ts(2024, 1, 1), -100_000), (ts(2025, 1, 1), 112_000)]
        result = solve_xirr(cfs)
        # 2024 is a leap year: 366/365 years
        expected = 1.12 ** (365 / 366) - 1
        assert result.converged
        assert result.rate == pytest.approx(expected, abs=1e-6)
        assert xirr(cfs) == pytest.approx(12.0, abs=0.1)

    def test_order_does_not_matter(self):
        cfs = [(ts(2025, 1, 1), 112_000), (ts(2024, 1, 1), -100_000)]
        assert xirr(cfs) == pytest.approx(12.0, abs=0.1)

    def test_root_zeroes_npv(self):
        cfs = [(ts(2024, 1, 1), -1000), (ts(2024, 7, 1), 300), (ts(2025, 3, 1), 800)]
        result = solve_xirr(cfs)
        assert result.converged
        assert abs(xnpv(result.rate, cfs)) < 1e-6

    def test_all_positive_returns_zero_without_iterating(self):
        result = solve_xirr([(ts(2024, 1, 1), 100), (ts(2024, 6, 1), 200)])
        assert result.rate == 0.0
        assert result.iterations == 0
        assert not result.converged

    def test_fewer_than_two_flows(self):
        assert solve_xirr([]).rate == 0.0
        assert solve_xirr([(ts(2024, 1, 1), -100)]).iterations == 0

    def test_same_date_terminates(self):
        result = solve_xirr([(ts(2024, 1, 1), -100), (ts(2024, 1, 1), 50)])
        assert result.iterations == 1
        assert not result.converged
        assert result.rate == pytest.approx(0.10)

    def test_total_loss_respects_rate_floor(self):
        result = solve_xirr([(ts(2024, 1, 1), -100_000), (ts(2025, 1, 1), 1)])
        assert result.rate >= -0.9999
        assert result.iterations <= 100

    def test_sign_change(self):
        assert has_sign_change([(ts(2024, 1, 1), -1), (ts(2024, 1, 2), 1)])
        assert not has_sign_change([(ts(2024, 1, 1), -1), (ts(2024, 1, 2), -1)])


class TestNetOfFees:

    def test_fee_point_at_latest_date(self):
        t0 = ts(2024, 1, 1)
        cfs = (CashflowPoint(t0, -100.0), CashflowPoint(t0 + timedelta(days=90), 120.0))
        net = net_cashflows(cfs, 5.0)
        assert net[-1] == CashflowPoint(t0 + timedelta(days=90), -5.0)
        assert net_cashflows(cfs, 0.0) == cfs

    def test_net_not_above_gross(self):
        """Random deployments and returns; any positive fee pulls the rate down."""
        rng = np.random.default_rng(2024)
        t0 = ts(2024, 1, 1)
        checked = 0
        for _ in range(200):
            n_deploy = int(rng.integers(1, 4))
            n_return = int(rng.integers(1, 5))
            cfs = [CashflowPoint(t0 + timedelta(days=int(d)), -float(rng.integers(10, 1000) * 1000))
                   for d in rng.integers(0, 60, n_deploy)]
            cfs += [CashflowPoint(t0 + timedelta(days=int(d)), float(rng.integers(10, 1000) * 1000))
                    for d in rng.integers(90, 720, n_return)]
            # below the smallest return, so the latest flow date stays net positive
            fees = float(rng.uniform(1.0, 9_999.0))

            gross, net = gross_and_net_xirr(tuple(cfs), fees)
            if gross.converged and net.converged:
                assert net.rate <= gross.rate + 1e-12
                checked += 1
        assert checked > 100

    def test_no_fees_net_equals_gross(self):
        t0 = ts(2024, 1, 1)
        cfs = (CashflowPoint(t0, -100.0), CashflowPoint(t0 + timedelta(days=200), 110.0))
        gross, net = gross_and_net_xirr(cfs, 0.0)
        assert gross == net
