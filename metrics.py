"""
metrics.py
Investment performance metrics: XIRR (gross and net of fees)
"""

import math
from datetime import date
from typing import Iterable, List, Sequence, Tuple

from config import (XIRR_INITIAL_GUESS, XIRR_MAX_ITERATIONS, XIRR_NPV_TOLERANCE,
                    XIRR_DERIVATIVE_FLOOR, XIRR_RATE_FLOOR)
from models import CashflowPoint, XirrResult
from utils import year_fraction

NO_RATE = XirrResult(rate=0.0, converged=False, iterations=0)


def _timed_amounts(cfs: Sequence[Tuple[date, float]]) -> List[Tuple[float, float]]:
    """(years since earliest flow, amount) for each flow; Actual/365."""
    t0 = min(d for d, _ in cfs)
    return [(year_fraction(t0, d), float(a)) for d, a in cfs]


def _npv_and_derivative(rate: float, timed: List[Tuple[float, float]]) -> Tuple[float, float]:
    npv = 0.0
    d_npv = 0.0
    for years, amount in timed:
        denom = (1.0 + rate) ** years
        npv += amount / denom
        d_npv += -years * amount / (denom * (1.0 + rate))
    return npv, d_npv


def xnpv(rate: float, cfs: Iterable[Tuple[date, float]]) -> float:
    """
    Net present value with irregular cashflow dates

    Args:
        rate: Annual discount rate (as decimal, e.g., 0.15 for 15%)
        cfs: (date, amount) pairs, any order

    Returns:
        Net present value at the earliest flow date
    """
    cfs = list(cfs)
    if not cfs or rate <= -1.0:
        return float('inf')
    return _npv_and_derivative(rate, _timed_amounts(cfs))[0]


def has_sign_change(cfs: Iterable[Tuple[date, float]]) -> bool:
    amounts = [a for _, a in cfs]
    return any(a > 0 for a in amounts) and any(a < 0 for a in amounts)


def solve_xirr(cfs: Iterable[Tuple[date, float]]) -> XirrResult:
    """
    Money-weighted annual return by Newton-Raphson

    Solves sum(amount_i / (1 + r) ** years_i) = 0. Starts at 10%, runs at
    most 100 iterations, stops when |NPV| < 1e-6 (converged) or when the
    derivative is flatter than 1e-10 (best estimate so far). After every
    step r is held at or above -99.99%.

    Args:
        cfs: (date, amount) pairs, any order. Negative = investor outflow,
             positive = money back to the investor.

    Returns:
        XirrResult(rate, converged, iterations). rate is 0 for fewer than
        two flows, one-sided flows (loop not entered) and non-finite
        results.
    """
    flows = tuple(cfs)
    if len(flows) < 2 or not has_sign_change(flows):
        return NO_RATE

    timed = _timed_amounts(flows)
    rate = XIRR_INITIAL_GUESS
    converged = False
    iterations = 0

    for iterations in range(1, XIRR_MAX_ITERATIONS + 1):
        try:
            npv, d_npv = _npv_and_derivative(rate, timed)
        except (OverflowError, ZeroDivisionError):
            rate = float('nan')
            break
        if not (math.isfinite(npv) and math.isfinite(d_npv)):
            rate = float('nan')
            break
        if abs(npv) < XIRR_NPV_TOLERANCE:
            converged = True
            break
        if abs(d_npv) < XIRR_DERIVATIVE_FLOOR:
            break
        rate -= npv / d_npv
        if rate < XIRR_RATE_FLOOR:
            rate = XIRR_RATE_FLOOR

    if not math.isfinite(rate):
        return XirrResult(rate=0.0, converged=False, iterations=iterations)
    return XirrResult(rate=rate, converged=converged, iterations=iterations)


def xirr(cfs: Iterable[Tuple[date, float]]) -> float:
    """Annual XIRR as a percentage (12.0 for 12%); 0 when no rate exists."""
    return solve_xirr(cfs).percent


def net_cashflows(cfs: Sequence[CashflowPoint], total_fees: float) -> Tuple[CashflowPoint, ...]:
    """
    Base flows plus one fee charge at the latest flow date

    Fees are charged to the investor, so the synthetic point is negative.
    Nothing is appended when there are no fees or no flows to date it by.
    """
    flows = tuple(cfs)
    if total_fees <= 0 or not flows:
        return flows
    latest = max(d for d, _ in flows)
    return flows + (CashflowPoint(latest, -abs(total_fees)),)


def gross_and_net_xirr(
    cfs: Sequence[CashflowPoint], total_fees: float
) -> Tuple[XirrResult, XirrResult]:
    """
    XIRR before and after investor fees on the same base flows

    Returns:
        (gross, net) XirrResult
    """
    flows = tuple(cfs)
    return solve_xirr(flows), solve_xirr(net_cashflows(flows, total_fees))
