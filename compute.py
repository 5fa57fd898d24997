"""
compute.py
Aggregation views - composes exposure, fees and XIRR into response shapes.

Every view is recomputed from the snapshot on each call; nothing is cached
or persisted. Exposure is fully aggregated before any fee is derived from
it, and each XIRR call receives a finished, immutable tuple of flows.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from exposure import LedgerExposure, aggregate_exposure, project_index, resolve_project_id
from fees import fees_for_request, investor_fees, platform_outstanding
from loaders import load_snapshot
from metrics import gross_and_net_xirr
from models import (Contractor, FinanceTerms, Investor, InvestorExposure, LedgerSnapshot,
                    RequestExposure)
from utils import as_timestamp, utc_now

logger = logging.getLogger(__name__)

# Figures summed when rolling request rows up to projects and the platform
ROLLUP_FIELDS = [
    "total_requested", "total_requested_with_tax", "total_funded", "total_returns",
    "outstanding", "platform_fee", "participation_fee", "total_due", "platform_outstanding",
]


def _as_of(as_of) -> datetime:
    ts = as_timestamp(as_of) if as_of is not None else None
    return ts or utc_now()


class _Directory:
    """Lookup of display names and finance terms for one snapshot."""

    def __init__(self, snapshot: LedgerSnapshot):
        self.contractors: Dict[str, Contractor] = {c.id: c for c in snapshot.contractors}
        self.projects = project_index(snapshot.projects)
        self.requests = {pr.id: pr for pr in snapshot.purchase_requests}

    def terms(self, contractor_id: Optional[str]) -> FinanceTerms:
        contractor = self.contractors.get(contractor_id) if contractor_id else None
        return contractor.terms if contractor else FinanceTerms()

    def contractor_name(self, contractor_id: Optional[str]) -> Optional[str]:
        contractor = self.contractors.get(contractor_id) if contractor_id else None
        return contractor.company_name if contractor else None

    def project_id(self, raw_id: Optional[str]) -> Optional[str]:
        return resolve_project_id(raw_id, self.projects)

    def project_name(self, raw_id: Optional[str]) -> Optional[str]:
        if raw_id is None:
            return None
        project = self.projects.get(raw_id)
        return project.display_name if project else raw_id


# ============================================================
# REQUEST ROWS
# ============================================================

def request_row(r: RequestExposure, directory: _Directory, as_of: datetime) -> dict:
    """Per-request figures: exposure joined with that request's fee breakdown."""
    fees = fees_for_request(r, directory.terms(r.contractor_id), as_of)
    pr = directory.requests.get(r.request_id)
    return {
        'request_id': r.request_id,
        'project_id': directory.project_id(r.project_id),
        'project_name': directory.project_name(r.project_id),
        'contractor_id': r.contractor_id,
        'contractor_name': directory.contractor_name(r.contractor_id),
        'status': pr.status if pr else None,
        'created_at': r.created_at,
        'first_deployment_at': r.first_deployment_at,
        'total_requested': r.total_requested,
        'requested_tax': r.requested_tax,
        'total_requested_with_tax': r.total_requested_with_tax,
        'total_funded': r.total_funded,
        'total_returns': r.total_returned,
        'outstanding': r.outstanding,
        'days_outstanding': fees.days_outstanding,
        'platform_fee': fees.platform_fee,
        'participation_fee': fees.participation_fee,
        'total_due': fees.total_due,
        'platform_outstanding': platform_outstanding(fees, r.total_returned),
    }


def _newest_first(rows: List[dict], key: str = 'created_at') -> List[dict]:
    """Sort by descending timestamp; rows without one go last, ties keep input order."""
    dated = [r for r in rows if r.get(key) is not None]
    undated = [r for r in rows if r.get(key) is None]
    return sorted(dated, key=lambda r: r[key], reverse=True) + undated


def _rollup(project_id: str, rows: List[dict], directory: _Directory) -> dict:
    out = {
        'project_id': project_id,
        'project_name': directory.project_name(project_id),
        'contractor_name': rows[0]['contractor_name'] if rows else None,
    }
    for f in ROLLUP_FIELDS:
        out[f] = sum(r[f] for r in rows)
    out['days_outstanding'] = max((r['days_outstanding'] for r in rows), default=0)
    out['request_count'] = len(rows)
    return out


def _project_rows(request_rows: List[dict], directory: _Directory) -> List[dict]:
    grouped: Dict[str, List[dict]] = {}
    for row in request_rows:
        if row['project_id'] is None:
            continue
        grouped.setdefault(row['project_id'], []).append(row)
    return [_rollup(pid, rows, directory) for pid, rows in grouped.items()]


# ============================================================
# PROJECT VIEW
# ============================================================

def project_view(exposure: LedgerExposure, snapshot: LedgerSnapshot, as_of=None) -> List[dict]:
    """
    Per-project rollups with fee figures

    Sorted by descending total_funded. Python's sort is stable, so
    projects with equal funding keep their first-seen order.
    """
    as_of = _as_of(as_of)
    directory = _Directory(snapshot)
    rows = [request_row(r, directory, as_of) for r in exposure.requests]
    projects = _project_rows(rows, directory)
    return sorted(projects, key=lambda p: p['total_funded'], reverse=True)


# ============================================================
# INVESTOR VIEW
# ============================================================

def investor_view(
    inv: InvestorExposure,
    exposure: LedgerExposure,
    snapshot: LedgerSnapshot,
    as_of=None,
    investor: Optional[Investor] = None,
) -> dict:
    """
    One investor's portfolio metrics

    totalInvested is the investor's completed deployments; the gross XIRR
    is taken over those deployments (out) and the investor's returns (in),
    and the net XIRR over the same flows plus one fee charge at the latest
    flow date.
    """
    as_of = _as_of(as_of)
    directory = _Directory(snapshot)

    fees = investor_fees(inv.total_deployed, inv.total_capital_returns)
    gross, net = gross_and_net_xirr(inv.cashflows, fees.total_fees)

    request_rows = []
    for d in inv.disbursements:
        r = exposure.request(d.purchase_request_id)
        if r is None:
            continue
        row = request_row(r, directory, as_of)
        row['investor_amount'] = d.amount
        row['first_deployed_at'] = d.first_deployed_at
        row['last_deployed_at'] = d.last_deployed_at
        request_rows.append(row)
    request_rows = _newest_first(request_rows)

    active = sum(1 for row in request_rows if row['outstanding'] > 0)

    return {
        'investor_id': inv.investor_id,
        'investor_name': investor.name if investor else None,
        'investor_email': investor.email if investor else None,
        'investor_type': investor.investor_type if investor else None,
        'investor_status': investor.status if investor else None,
        'totalInvested': inv.total_deployed,
        'totalReturns': max(fees.gross_profit, 0.0),
        'currentValue': inv.outstanding,
        'roi': gross.percent,
        'netRoi': net.percent,
        'roiConverged': gross.converged,
        'netRoiConverged': net.converged,
        'managementFees': fees.management_fee,
        'performanceFees': fees.performance_fee,
        'capitalInflow': inv.total_capital_inflow,
        'capitalReturns': inv.total_capital_returns,
        'netCapitalReturns': fees.net_capital_returns,
        'capitalWithdrawn': inv.total_withdrawn,
        'availableCapital': inv.available_capital,
        'activeInvestments': active,
        'completedInvestments': len(request_rows) - active,
        'totalInvestments': len(request_rows),
        'request_rows': request_rows,
    }


def investor_views(exposure: LedgerExposure, snapshot: LedgerSnapshot, as_of=None) -> List[dict]:
    as_of = _as_of(as_of)
    investors = {i.id: i for i in snapshot.investors}
    return [investor_view(inv, exposure, snapshot, as_of, investors.get(inv.investor_id))
            for inv in exposure.investors]


# ============================================================
# PLATFORM SUMMARY
# ============================================================

def platform_summary(
    projects: List[dict],
    exposure: LedgerExposure,
    investor_count: Optional[int] = None,
) -> dict:
    """Sum of every per-project figure, plus investor / project / contractor counts."""
    summary = {f: sum(p[f] for p in projects) for f in ROLLUP_FIELDS}
    summary['request_count'] = sum(p['request_count'] for p in projects)
    summary['total_requests'] = len(exposure.requests)
    summary['total_projects'] = len(projects)
    summary['total_contractors'] = len({r.contractor_id for r in exposure.requests if r.contractor_id})
    summary['total_investors'] = len(exposure.investors) if investor_count is None else investor_count
    return summary


# ============================================================
# CONTRACTOR VIEW
# ============================================================

def contractor_view(contractor_id: str, exposure: LedgerExposure, snapshot: LedgerSnapshot,
                    as_of=None) -> dict:
    """
    One contractor's obligations under its own finance terms

    Requests newest first; projects by descending total_due.
    """
    as_of = _as_of(as_of)
    directory = _Directory(snapshot)
    terms = directory.terms(contractor_id)

    rows = [request_row(r, directory, as_of) for r in exposure.requests
            if r.contractor_id == contractor_id]
    projects = sorted(_project_rows(rows, directory), key=lambda p: p['total_due'], reverse=True)

    summary = {f: sum(p[f] for p in projects) for f in ROLLUP_FIELDS}
    summary['total_requests'] = len(rows)
    summary['total_projects'] = len(projects)

    return {
        'contractor_id': contractor_id,
        'contractor_name': directory.contractor_name(contractor_id),
        'terms': {
            'platform_fee_rate': terms.platform_fee_rate,
            'platform_fee_cap': terms.platform_fee_cap,
            'participation_fee_rate_daily': terms.participation_fee_rate_daily,
        },
        'summary': summary,
        'projects': projects,
        'requests': _newest_first(rows),
    }


# ============================================================
# OVERVIEW
# ============================================================

def finance_overview(snapshot: LedgerSnapshot, as_of=None) -> dict:
    """
    Platform-wide finance overview for one snapshot

    Returns:
        Dict with summary, projects, investors and data_quality counts
    """
    as_of = _as_of(as_of)
    exposure = aggregate_exposure(snapshot)

    projects = project_view(exposure, snapshot, as_of)
    investors = investor_views(exposure, snapshot, as_of)
    summary = platform_summary(projects, exposure, len(investors))

    quality = snapshot.quality.merge(exposure.quality)
    if quality.total:
        logger.warning(f"Finance overview computed with {quality.total:,} coerced or skipped row(s)")

    return {
        'as_of': as_of,
        'summary': summary,
        'projects': projects,
        'investors': investors,
        'data_quality': dict(quality.counts),
    }


def run_finance_overview(as_of=None) -> dict:
    """
    Fetch the ledger from the data layer and compute the overview

    Raises:
        LedgerUnavailableError: the store cannot serve the required tables
    """
    return finance_overview(load_snapshot(), as_of)
