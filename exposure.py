"""
exposure.py
Exposure aggregation: completed transactions -> funded / returned / outstanding

KEY PRINCIPLES:
- Only completed transactions count (ledger.completed is applied here, so
  callers may pass the raw log)
- Outstanding is max(funded - returned, 0) at request level; higher levels
  sum the clamped request figures
- first_deployment_at is the EARLIEST completed deployment on a request
- A transaction pointing at an unknown purchase request or investor is
  skipped and counted, never raised
- Pure: inputs are not mutated, identical input gives identical output
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import TX_DEPLOYMENT, TX_RETURN, TX_INFLOW, TX_WITHDRAWAL
from ledger import completed, of_type, group_by, total_amount, date_range, earliest
from models import (CapitalTransaction, PurchaseRequest, LineItem, Project,
                    RequestExposure, ProjectExposure, InvestorExposure, Disbursement,
                    CashflowPoint, DataQualityReport, LedgerSnapshot)

logger = logging.getLogger(__name__)


# ============================================================
# REQUEST LEVEL
# ============================================================

def requested_values(line_items: Iterable[LineItem]) -> Dict[str, Tuple[float, float]]:
    """purchase_request_id -> (sum of qty x rate, sum of tax on those lines)"""
    out: Dict[str, Tuple[float, float]] = {}
    for item in line_items:
        subtotal, tax = out.get(item.purchase_request_id, (0.0, 0.0))
        out[item.purchase_request_id] = (subtotal + item.amount, tax + item.tax_amount)
    return out


def aggregate_requests(
    transactions: Iterable[CapitalTransaction],
    purchase_requests: Sequence[PurchaseRequest],
    line_items: Iterable[LineItem] = (),
    report: Optional[DataQualityReport] = None,
) -> Tuple[RequestExposure, ...]:
    """
    Build one RequestExposure per purchase request, in input order

    Args:
        transactions: Ledger rows (any status; non-completed are ignored)
        purchase_requests: Known purchase requests
        line_items: Material lines, grouped here by purchase_request_id
        report: Receives skip counts

    Returns:
        Tuple of RequestExposure
    """
    report = report if report is not None else DataQualityReport()
    known = {pr.id for pr in purchase_requests}

    moves = [t for t in completed(transactions) if t.is_request_movement]
    by_request = group_by(moves, lambda t: t.purchase_request_id)

    for rid, rows in by_request.items():
        if rid not in known:
            report.add("missing_request", len(rows), detail=f"transactions for unknown request {rid}")

    values = requested_values(line_items)
    for rid in values:
        if rid not in known:
            report.add("missing_request", detail=f"line items for unknown request {rid}")

    out = []
    for pr in purchase_requests:
        rows = by_request.get(pr.id, [])
        deployments = of_type(rows, TX_DEPLOYMENT)
        subtotal, tax = values.get(pr.id, (0.0, 0.0))
        out.append(RequestExposure(
            request_id=pr.id,
            project_id=pr.project_id,
            contractor_id=pr.contractor_id,
            created_at=pr.created_at,
            total_requested=subtotal,
            requested_tax=tax,
            total_funded=total_amount(deployments),
            total_returned=total_amount(of_type(rows, TX_RETURN)),
            first_deployment_at=earliest(deployments),
        ))
    return tuple(out)


# ============================================================
# PROJECT LEVEL
# ============================================================

def project_index(projects: Iterable[Project]) -> Dict[str, Project]:
    """
    Index projects by id, external id and trimmed name

    Priority on collision: id, then external id, then name. Requests in
    older data sometimes carry the project name in place of its id.
    """
    projects = list(projects)
    by_name: Dict[str, Project] = {}
    by_external: Dict[str, Project] = {}
    for p in projects:
        if p.project_name:
            by_name.setdefault(p.project_name.strip(), p)
        if p.project_id_external:
            by_external.setdefault(p.project_id_external, p)
    index = {**by_name, **by_external}
    for p in projects:
        index[p.id] = p
    return index


def matched_by_name(raw_id: Optional[str], project: Optional[Project]) -> bool:
    """True when raw_id only resolved to project through its name."""
    if raw_id is None or project is None:
        return False
    return raw_id not in (project.id, project.project_id_external)


def resolve_project_id(raw_id: Optional[str], index: Dict[str, Project]) -> Optional[str]:
    """Canonical project id for a request's project reference (raw id if unknown)."""
    if raw_id is None:
        return None
    project = index.get(raw_id)
    return project.id if project else raw_id


def aggregate_projects(
    requests: Iterable[RequestExposure],
    projects: Iterable[Project] = (),
    report: Optional[DataQualityReport] = None,
) -> Tuple[ProjectExposure, ...]:
    """
    Roll request exposures up to projects, in first-seen order

    Requests without a project are left out of every project rollup.
    Project ids are resolved through the project list (id or external id);
    an id not in the list is kept as-is, since names are display-only.
    """
    report = report if report is not None else DataQualityReport()
    index = project_index(projects)

    grouped: Dict[str, List[RequestExposure]] = {}
    for r in requests:
        pid = resolve_project_id(r.project_id, index)
        if pid is None:
            report.add("request_without_project", detail=r.request_id)
            continue
        if index and pid not in index:
            report.add("unknown_project", detail=pid)
        elif matched_by_name(r.project_id, index.get(r.project_id)):
            report.add("project_matched_by_name", detail=f"{r.project_id} -> {pid}")
        grouped.setdefault(pid, []).append(r)

    return tuple(ProjectExposure(project_id=pid, requests=tuple(rows))
                 for pid, rows in grouped.items())


# ============================================================
# INVESTOR LEVEL
# ============================================================

def investor_cashflows(rows: Iterable[CapitalTransaction]) -> Tuple[CashflowPoint, ...]:
    """
    Signed, dated flows for one investor's completed transactions

    Deployments leave the investor (negative); returns come back
    (positive). Inflows and withdrawals move money between the investor
    and the platform account and are not part of the return on deployed
    capital. Undated rows cannot be placed in time and are left out.
    """
    flows = []
    for t in rows:
        if t.created_at is None:
            continue
        if t.transaction_type == TX_DEPLOYMENT:
            flows.append(CashflowPoint(t.created_at, -abs(t.amount)))
        elif t.transaction_type == TX_RETURN:
            flows.append(CashflowPoint(t.created_at, abs(t.amount)))
    return tuple(flows)


def _disbursements(deployments: List[CapitalTransaction]) -> Tuple[Disbursement, ...]:
    out = []
    for rid, rows in group_by(deployments, lambda t: t.purchase_request_id).items():
        first, last = date_range(rows)
        out.append(Disbursement(
            purchase_request_id=rid,
            amount=total_amount(rows),
            first_deployed_at=first,
            last_deployed_at=last,
        ))
    return tuple(out)


def aggregate_investors(
    transactions: Iterable[CapitalTransaction],
    investor_ids: Optional[Sequence[str]] = None,
    report: Optional[DataQualityReport] = None,
) -> Tuple[InvestorExposure, ...]:
    """
    Roll completed transactions up to investors

    Args:
        transactions: Ledger rows (any status)
        investor_ids: Known investors, in output order. Investors with no
            transactions get a zero exposure. When given, rows for any
            other investor are skipped and counted. When None, every
            investor seen in the ledger is reported (first-seen order).
        report: Receives skip counts

    Returns:
        Tuple of InvestorExposure
    """
    report = report if report is not None else DataQualityReport()
    by_investor = group_by(completed(transactions), lambda t: t.investor_id)

    if investor_ids is None:
        order = list(by_investor.keys())
    else:
        order = list(dict.fromkeys(investor_ids))
        known = set(order)
        for iid, rows in by_investor.items():
            if iid not in known:
                report.add("missing_investor", len(rows), detail=f"transactions for unknown investor {iid}")

    out = []
    for iid in order:
        rows = by_investor.get(iid, [])
        deployments = of_type(rows, TX_DEPLOYMENT)
        undated = sum(1 for t in of_type(rows, TX_DEPLOYMENT, TX_RETURN) if t.created_at is None)
        report.add("undated_cashflow", undated)
        out.append(InvestorExposure(
            investor_id=iid,
            total_deployed=total_amount(deployments),
            total_capital_inflow=total_amount(of_type(rows, TX_INFLOW)),
            total_capital_returns=total_amount(of_type(rows, TX_RETURN)),
            total_withdrawn=total_amount(of_type(rows, TX_WITHDRAWAL)),
            disbursements=_disbursements([t for t in deployments if t.purchase_request_id]),
            cashflows=investor_cashflows(rows),
        ))
    return tuple(out)


# ============================================================
# WHOLE LEDGER
# ============================================================

@dataclass(frozen=True)
class LedgerExposure:
    """Exposure at every level for one snapshot."""
    requests: Tuple[RequestExposure, ...] = ()
    projects: Tuple[ProjectExposure, ...] = ()
    investors: Tuple[InvestorExposure, ...] = ()
    quality: DataQualityReport = field(default_factory=DataQualityReport, compare=False)

    def request(self, request_id: str) -> Optional[RequestExposure]:
        for r in self.requests:
            if r.request_id == request_id:
                return r
        return None

    def investor(self, investor_id: str) -> Optional[InvestorExposure]:
        for i in self.investors:
            if i.investor_id == investor_id:
                return i
        return None


def aggregate_exposure(snapshot: LedgerSnapshot) -> LedgerExposure:
    """
    Run request, project and investor aggregation over one snapshot

    The investor list bounds the investor rollup only when the snapshot
    carries one; otherwise every investor in the ledger is reported.
    """
    report = DataQualityReport()
    requests = aggregate_requests(snapshot.transactions, snapshot.purchase_requests,
                                  snapshot.line_items, report)
    projects = aggregate_projects(requests, snapshot.projects, report)
    investor_ids = [i.id for i in snapshot.investors] if snapshot.investors else None
    investors = aggregate_investors(snapshot.transactions, investor_ids, report)

    report.log_summary("exposure")
    return LedgerExposure(requests=requests, projects=projects,
                          investors=investors, quality=report)
