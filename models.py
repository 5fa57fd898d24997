"""
models.py
Data structures for the capital ledger engine
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, NamedTuple, Optional, Tuple

from config import (STATUS_COMPLETED, REQUEST_TRANSACTION_TYPES,
                    DEFAULT_PLATFORM_FEE_RATE, DEFAULT_PLATFORM_FEE_CAP,
                    DEFAULT_PARTICIPATION_FEE_RATE_DAILY, resolve_finance_terms)

logger = logging.getLogger(__name__)


# ============================================================
# LEDGER ENTITIES
# ============================================================

@dataclass(frozen=True)
class CapitalTransaction:
    """
    One immutable row of the capital ledger

    Only completed rows take part in any aggregate. Amounts are
    non-negative; the sign of a movement comes from transaction_type.
    """
    id: str
    amount: float
    transaction_type: str       # inflow / deployment / return / withdrawal
    status: str                 # pending / completed / failed / rejected
    created_at: Optional[datetime] = None
    investor_id: Optional[str] = None
    project_id: Optional[str] = None
    contractor_id: Optional[str] = None
    purchase_request_id: Optional[str] = None
    description: str = ""
    reference_number: str = ""

    @property
    def is_completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @property
    def is_request_movement(self) -> bool:
        """Deployment or return attributed to a purchase request."""
        return (self.transaction_type in REQUEST_TRANSACTION_TYPES
                and bool(self.purchase_request_id))


@dataclass(frozen=True)
class LineItem:
    """Material line on a purchase request (requested_qty x unit_rate)."""
    purchase_request_id: str
    requested_qty: float = 0.0
    unit_rate: float = 0.0
    tax_percent: float = 0.0   # percent, e.g. 18 for 18% GST

    @property
    def amount(self) -> float:
        return self.requested_qty * self.unit_rate

    @property
    def tax_amount(self) -> float:
        return self.amount * (self.tax_percent / 100.0)


@dataclass(frozen=True)
class PurchaseRequest:
    id: str
    project_id: Optional[str] = None
    contractor_id: Optional[str] = None
    status: str = "draft"
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class FinanceTerms:
    """Per-contractor fee configuration. Rates are fractions."""
    platform_fee_rate: float = DEFAULT_PLATFORM_FEE_RATE
    platform_fee_cap: float = DEFAULT_PLATFORM_FEE_CAP
    participation_fee_rate_daily: float = DEFAULT_PARTICIPATION_FEE_RATE_DAILY

    @classmethod
    def from_row(cls, row: Optional[dict] = None) -> "FinanceTerms":
        return cls(**resolve_finance_terms(row))


@dataclass(frozen=True)
class Contractor:
    id: str
    company_name: Optional[str] = None
    terms: FinanceTerms = field(default_factory=FinanceTerms)


@dataclass(frozen=True)
class Project:
    id: str
    project_name: Optional[str] = None
    project_id_external: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.project_name or self.project_id_external or self.id


@dataclass(frozen=True)
class Investor:
    """Capital provider. status gates opportunity visibility, not ledger inclusion."""
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    status: str = "active"
    investor_type: Optional[str] = None


class CashflowPoint(NamedTuple):
    """Signed, dated flow from the investor's side: negative out, positive in."""
    date: datetime
    amount: float


# ============================================================
# DATA QUALITY
# ============================================================

@dataclass
class DataQualityReport:
    """
    Counts of rows that were coerced or skipped instead of failing

    Categories are free-form strings such as "malformed_amount" or
    "missing_request". A report is filled inside a single call and
    handed back to the caller; it is never shared between calls.
    """
    counts: Dict[str, int] = field(default_factory=dict)

    def add(self, category: str, n: int = 1, detail: str = ""):
        if n <= 0:
            return
        self.counts[category] = self.counts.get(category, 0) + n
        if detail:
            logger.debug(f"{category}: {detail}")

    def merge(self, other: "DataQualityReport") -> "DataQualityReport":
        merged = DataQualityReport(dict(self.counts))
        for category, n in other.counts.items():
            merged.add(category, n)
        return merged

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def log_summary(self, scope: str):
        for category, n in sorted(self.counts.items()):
            logger.warning(f"{scope}: {n:,} row(s) {category.replace('_', ' ')}")


@dataclass(frozen=True)
class LedgerSnapshot:
    """Everything fetched from the data layer for one computation."""
    transactions: Tuple[CapitalTransaction, ...] = ()
    purchase_requests: Tuple[PurchaseRequest, ...] = ()
    line_items: Tuple[LineItem, ...] = ()
    investors: Tuple[Investor, ...] = ()
    projects: Tuple[Project, ...] = ()
    contractors: Tuple[Contractor, ...] = ()
    quality: DataQualityReport = field(default_factory=DataQualityReport, compare=False)


# ============================================================
# EXPOSURE
# ============================================================

@dataclass(frozen=True)
class RequestExposure:
    """Funded / returned / outstanding for one purchase request."""
    request_id: str
    project_id: Optional[str] = None
    contractor_id: Optional[str] = None
    created_at: Optional[datetime] = None
    total_requested: float = 0.0
    requested_tax: float = 0.0
    total_funded: float = 0.0
    total_returned: float = 0.0
    first_deployment_at: Optional[datetime] = None

    @property
    def outstanding(self) -> float:
        return max(self.total_funded - self.total_returned, 0.0)

    @property
    def total_requested_with_tax(self) -> float:
        return self.total_requested + self.requested_tax


@dataclass(frozen=True)
class ProjectExposure:
    project_id: str
    requests: Tuple[RequestExposure, ...] = ()

    @property
    def request_count(self) -> int:
        return len(self.requests)

    @property
    def total_requested(self) -> float:
        return sum(r.total_requested for r in self.requests)

    @property
    def total_funded(self) -> float:
        return sum(r.total_funded for r in self.requests)

    @property
    def total_returned(self) -> float:
        return sum(r.total_returned for r in self.requests)

    @property
    def total_outstanding(self) -> float:
        # Sum of per-request clamped figures, not clamp of the sums
        return sum(r.outstanding for r in self.requests)


@dataclass(frozen=True)
class Disbursement:
    """One investor's deployments into one purchase request."""
    purchase_request_id: str
    amount: float
    first_deployed_at: Optional[datetime] = None
    last_deployed_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvestorExposure:
    investor_id: str
    total_deployed: float = 0.0
    total_capital_inflow: float = 0.0
    total_capital_returns: float = 0.0
    total_withdrawn: float = 0.0
    disbursements: Tuple[Disbursement, ...] = ()
    cashflows: Tuple[CashflowPoint, ...] = ()

    @property
    def outstanding(self) -> float:
        return max(self.total_deployed - self.total_capital_returns, 0.0)

    @property
    def available_capital(self) -> float:
        return max(self.total_capital_inflow + self.total_capital_returns
                   - self.total_deployed - self.total_withdrawn, 0.0)


# ============================================================
# FEES AND RETURNS
# ============================================================

@dataclass(frozen=True)
class RequestFees:
    """Contractor-side charges on deployed capital."""
    days_outstanding: int = 0
    platform_fee: float = 0.0
    participation_fee: float = 0.0
    total_due: float = 0.0


@dataclass(frozen=True)
class InvestorFees:
    """Investor-side net-of-fee figures over lifetime realized returns."""
    total_invested: float = 0.0
    total_capital_returns: float = 0.0
    management_fee: float = 0.0
    gross_profit: float = 0.0
    hurdle_amount: float = 0.0
    performance_fee_base: float = 0.0
    performance_fee: float = 0.0
    net_capital_returns: float = 0.0

    @property
    def total_fees(self) -> float:
        return self.management_fee + self.performance_fee


class XirrResult(NamedTuple):
    """Outcome of the XIRR solver. rate is a fraction (0.12 = 12%)."""
    rate: float
    converged: bool
    iterations: int

    @property
    def percent(self) -> float:
        return self.rate * 100.0
