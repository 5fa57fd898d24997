"""
fees.py
Fee waterfall: contractor-side charges and investor-side net-of-fee figures

ORDER (fixed):
1. days_outstanding since the earliest deployment
2. platform fee      = min(funded x rate, cap)        one-time, capped
3. participation fee = funded x daily rate x days      linear, uncapped
4. total due         = funded + platform + participation
5. investor: management fee (2% of invested), performance fee
   (20% of profit above a 12% hurdle, once over lifetime realized returns)
6. net capital returns = returns - management - performance, floored at 0

Steps 2-3 are charged on funded, before any return is netted against it.
"""

from datetime import datetime
from typing import Iterable, Optional

from config import MANAGEMENT_FEE_RATE, HURDLE_RATE, PERFORMANCE_FEE_RATE
from models import FinanceTerms, InvestorFees, LineItem, RequestExposure, RequestFees
from utils import whole_days_between


# ============================================================
# CONTRACTOR SIDE
# ============================================================

def platform_fee(amount: float, terms: FinanceTerms) -> float:
    """
    One-time platform fee on an amount, capped

    This is the single formula for the platform fee. The invoice totals
    below call it on the material subtotal, so the two figures agree to
    the cent whenever the subtotal equals the funded amount.
    """
    return max(min(amount * terms.platform_fee_rate, terms.platform_fee_cap), 0.0)


def participation_fee(funded: float, terms: FinanceTerms, days_outstanding: int) -> float:
    return max(funded * terms.participation_fee_rate_daily * max(days_outstanding, 0), 0.0)


def request_fees(
    funded: float,
    first_deployment_at: Optional[datetime],
    as_of: datetime,
    terms: FinanceTerms,
) -> RequestFees:
    """
    Contractor charges on one purchase request

    Args:
        funded: Total completed deployments on the request
        first_deployment_at: Earliest deployment (None -> 0 days)
        as_of: Valuation timestamp ("now")
        terms: Contractor finance terms

    Returns:
        RequestFees
    """
    funded = max(funded, 0.0)
    days = whole_days_between(first_deployment_at, as_of)
    pf = platform_fee(funded, terms)
    part = participation_fee(funded, terms, days)
    return RequestFees(
        days_outstanding=days,
        platform_fee=pf,
        participation_fee=part,
        total_due=funded + pf + part,
    )


def fees_for_request(exposure: RequestExposure, terms: FinanceTerms, as_of: datetime) -> RequestFees:
    return request_fees(exposure.total_funded, exposure.first_deployment_at, as_of, terms)


def platform_outstanding(fees: RequestFees, returned: float) -> float:
    """What the contractor still owes including fees: max(total_due - returned, 0)."""
    return max(fees.total_due - returned, 0.0)


# ============================================================
# INVESTOR SIDE
# ============================================================

def investor_fees(total_invested: float, total_capital_returns: float) -> InvestorFees:
    """
    Management and performance fees over an investor's lifetime

    The performance fee is European style: computed once on the whole
    realized profit, and recomputed from scratch on every call. It is not
    crystallized per period, so it moves as more returns arrive.
    """
    invested = max(total_invested, 0.0)
    returns = max(total_capital_returns, 0.0)

    management = invested * MANAGEMENT_FEE_RATE
    gross_profit = returns - invested
    hurdle = invested * HURDLE_RATE
    base = max(gross_profit - hurdle, 0.0)
    performance = base * PERFORMANCE_FEE_RATE

    return InvestorFees(
        total_invested=invested,
        total_capital_returns=returns,
        management_fee=management,
        gross_profit=gross_profit,
        hurdle_amount=hurdle,
        performance_fee_base=base,
        performance_fee=performance,
        net_capital_returns=max(returns - management - performance, 0.0),
    )


# ============================================================
# INVOICE FIGURES
# ============================================================

def invoice_totals(line_items: Iterable[LineItem], terms: FinanceTerms) -> dict:
    """
    Totals the invoice renderer prints for a purchase request

    Returns:
        Dict with subtotal, total_tax, grand_total, platform_fee
    """
    items = list(line_items)
    subtotal = sum(i.amount for i in items)
    total_tax = sum(i.tax_amount for i in items)
    return {
        'subtotal': subtotal,
        'total_tax': total_tax,
        'grand_total': subtotal + total_tax,
        'platform_fee': platform_fee(subtotal, terms),
    }
