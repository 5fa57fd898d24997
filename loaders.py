"""
loaders.py
Data loading and normalization: raw rows -> typed ledger records

This is the one place where loosely typed rows are validated. Structural
problems (a table missing a required column) raise ValueError. Row-level
problems never raise: malformed numerics become 0, unusable rows are
skipped, and every such event is counted in a DataQualityReport.
"""

import logging
from typing import Iterable, Optional, Tuple, Union

import numpy as np
import pandas as pd

from config import normalize_label, TRANSACTION_TYPES, TRANSACTION_STATUSES
from database import execute_query, LedgerUnavailableError
from models import (CapitalTransaction, LineItem, PurchaseRequest, Contractor,
                    FinanceTerms, Project, Investor, LedgerSnapshot, DataQualityReport)
from utils import as_timestamp, clean_id

logger = logging.getLogger(__name__)

Rows = Union[pd.DataFrame, Iterable[dict], None]


def _frame(rows: Rows) -> pd.DataFrame:
    if rows is None:
        return pd.DataFrame()
    # object dtype keeps ids as given; a missing cell must not turn 42 into 42.0
    if isinstance(rows, pd.DataFrame):
        df = rows.astype(object)
    else:
        df = pd.DataFrame(list(rows), dtype=object)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def _require(df: pd.DataFrame, table: str, required: set):
    missing = sorted(c for c in required if c not in df.columns)
    if missing:
        raise ValueError(f"{table} table missing columns: {missing}")


def _ensure(df: pd.DataFrame, *columns: str) -> pd.DataFrame:
    for c in columns:
        if c not in df.columns:
            df[c] = None
    return df


def coerce_non_negative(
    values: pd.Series,
    report: DataQualityReport,
    category: str,
    missing_is_malformed: bool = True,
) -> pd.Series:
    """
    Numeric, non-negative version of values; anything else becomes 0

    Args:
        values: Raw column
        report: Receives a count of coerced cells under category
        missing_is_malformed: If False, empty cells stay NaN (callers apply defaults)

    Returns:
        float Series
    """
    raw_missing = values.isna()
    num = pd.to_numeric(values, errors="coerce")
    bad = num.isna() | (num < 0) | ~np.isfinite(num.fillna(0.0))
    if not missing_is_malformed:
        bad = bad & ~raw_missing
    report.add(category, int(bad.sum()))
    out = num.astype(float).where(~bad, 0.0)
    if missing_is_malformed:
        out = out.fillna(0.0)
    return out


def _text(x) -> str:
    if x is None or (isinstance(x, float) and pd.isna(x)):
        return ""
    return str(x).strip()


# ============================================================
# TABLE LOADERS
# ============================================================

def load_capital_transactions(
    df: Rows = None, report: Optional[DataQualityReport] = None
) -> Tuple[CapitalTransaction, ...]:
    """
    Load and normalize capital transactions

    Args:
        df: Optional rows. If None, loads from database.
        report: Data-quality counters for this load

    Returns:
        Tuple of CapitalTransaction in source order (all statuses)
    """
    report = report if report is not None else DataQualityReport()
    tx = _frame(df) if df is not None else execute_query("SELECT * FROM capital_transactions")
    if tx.empty:
        return ()

    _require(tx, "capital_transactions", {"amount", "transaction_type", "status"})
    tx = _ensure(tx, "id", "investor_id", "project_id", "contractor_id",
                 "purchase_request_id", "created_at", "description", "reference_number")

    tx["amount"] = coerce_non_negative(tx["amount"], report, "malformed_amount")
    tx["transaction_type"] = tx["transaction_type"].map(normalize_label)
    tx["status"] = tx["status"].map(normalize_label)

    report.add("unknown_transaction_type", int((~tx["transaction_type"].isin(TRANSACTION_TYPES)).sum()))
    report.add("unknown_status", int((~tx["status"].isin(TRANSACTION_STATUSES)).sum()))

    out = []
    for i, row in enumerate(tx.to_dict("records")):
        tx_id = clean_id(row.get("id"))
        if tx_id is None:
            report.add("missing_id", detail=f"capital_transactions row {i}")
            tx_id = f"row-{i}"
        created_at = as_timestamp(row.get("created_at"))
        if created_at is None:
            report.add("missing_timestamp", detail=f"transaction {tx_id}")
        out.append(CapitalTransaction(
            id=tx_id,
            amount=float(row["amount"]),
            transaction_type=row["transaction_type"],
            status=row["status"],
            created_at=created_at,
            investor_id=clean_id(row.get("investor_id")),
            project_id=clean_id(row.get("project_id")),
            contractor_id=clean_id(row.get("contractor_id")),
            purchase_request_id=clean_id(row.get("purchase_request_id")),
            description=_text(row.get("description")),
            reference_number=_text(row.get("reference_number")),
        ))
    return tuple(out)


def load_purchase_requests(
    df: Rows = None, report: Optional[DataQualityReport] = None
) -> Tuple[PurchaseRequest, ...]:
    """Load purchase requests; rows without an id are skipped."""
    report = report if report is not None else DataQualityReport()
    pr = _frame(df) if df is not None else execute_query("SELECT * FROM purchase_requests")
    if pr.empty:
        return ()

    _require(pr, "purchase_requests", {"id"})
    pr = _ensure(pr, "project_id", "contractor_id", "status", "created_at")

    out = []
    for row in pr.to_dict("records"):
        pr_id = clean_id(row.get("id"))
        if pr_id is None:
            report.add("missing_id", detail="purchase request without id")
            continue
        out.append(PurchaseRequest(
            id=pr_id,
            project_id=clean_id(row.get("project_id")),
            contractor_id=clean_id(row.get("contractor_id")),
            status=normalize_label(row.get("status")) or "draft",
            created_at=as_timestamp(row.get("created_at")),
        ))
    return tuple(out)


def load_line_items(
    df: Rows = None, report: Optional[DataQualityReport] = None
) -> Tuple[LineItem, ...]:
    """Load purchase request line items (requested_qty x unit_rate, optional tax_percent)."""
    report = report if report is not None else DataQualityReport()
    items = _frame(df) if df is not None else execute_query("SELECT * FROM purchase_request_items")
    if items.empty:
        return ()

    _require(items, "purchase_request_items", {"purchase_request_id", "requested_qty", "unit_rate"})
    items = _ensure(items, "tax_percent")

    items["requested_qty"] = coerce_non_negative(items["requested_qty"], report, "malformed_quantity")
    items["unit_rate"] = coerce_non_negative(items["unit_rate"], report, "malformed_rate")
    items["tax_percent"] = coerce_non_negative(
        items["tax_percent"], report, "malformed_tax", missing_is_malformed=False).fillna(0.0)

    out = []
    for row in items.to_dict("records"):
        pr_id = clean_id(row.get("purchase_request_id"))
        if pr_id is None:
            report.add("missing_request", detail="line item without purchase_request_id")
            continue
        out.append(LineItem(
            purchase_request_id=pr_id,
            requested_qty=float(row["requested_qty"]),
            unit_rate=float(row["unit_rate"]),
            tax_percent=float(row["tax_percent"]),
        ))
    return tuple(out)


def load_contractors(
    df: Rows = None, report: Optional[DataQualityReport] = None
) -> Tuple[Contractor, ...]:
    """
    Load contractors with their finance terms

    Empty term cells take the documented defaults; malformed or negative
    ones are coerced to 0.
    """
    report = report if report is not None else DataQualityReport()
    c = _frame(df) if df is not None else execute_query("SELECT * FROM contractors")
    if c.empty:
        return ()

    _require(c, "contractors", {"id"})
    c = _ensure(c, "company_name", "platform_fee_rate", "platform_fee_cap",
                "participation_fee_rate_daily")

    for col in ["platform_fee_rate", "platform_fee_cap", "participation_fee_rate_daily"]:
        c[col] = coerce_non_negative(c[col], report, "malformed_rate", missing_is_malformed=False)

    out = []
    for row in c.to_dict("records"):
        cid = clean_id(row.get("id"))
        if cid is None:
            report.add("missing_id", detail="contractor without id")
            continue
        out.append(Contractor(
            id=cid,
            company_name=_text(row.get("company_name")) or None,
            terms=FinanceTerms.from_row(row),
        ))
    return tuple(out)


def load_projects(df: Rows = None) -> Tuple[Project, ...]:
    """Load project display names; ids and external ids are whitespace-trimmed."""
    p = _frame(df) if df is not None else execute_query("SELECT * FROM projects")
    if p.empty:
        return ()

    _require(p, "projects", {"id"})
    p = _ensure(p, "project_name", "project_id_external")

    out = []
    for row in p.to_dict("records"):
        pid = clean_id(row.get("id"))
        if pid is None:
            continue
        out.append(Project(
            id=pid,
            project_name=_text(row.get("project_name")) or None,
            project_id_external=clean_id(row.get("project_id_external")),
        ))
    return tuple(out)


def load_investors(df: Rows = None) -> Tuple[Investor, ...]:
    """Load investors. Inactive investors are kept: their history still counts."""
    inv = _frame(df) if df is not None else execute_query("SELECT * FROM investors")
    if inv.empty:
        return ()

    _require(inv, "investors", {"id"})
    inv = _ensure(inv, "name", "email", "status", "investor_type")

    out = []
    for row in inv.to_dict("records"):
        iid = clean_id(row.get("id"))
        if iid is None:
            continue
        out.append(Investor(
            id=iid,
            name=_text(row.get("name")) or None,
            email=_text(row.get("email")).lower() or None,
            status=normalize_label(row.get("status")) or "active",
            investor_type=_text(row.get("investor_type")) or None,
        ))
    return tuple(out)


# ============================================================
# SNAPSHOT
# ============================================================

def _optional_table(loader, table: str):
    """Display/terms tables degrade to empty when the store can't serve them."""
    try:
        return loader()
    except LedgerUnavailableError as e:
        logger.error(f"Failed to load {table}, continuing without it: {e}")
        return ()


def load_snapshot() -> LedgerSnapshot:
    """
    Fetch every ledger table once and normalize it

    Transactions, purchase requests and line items are required: if the
    store cannot serve them, LedgerUnavailableError propagates. Contractors,
    projects and investors only add names and terms, so their failure is
    logged and default terms / raw ids are used instead.

    Returns:
        LedgerSnapshot with its DataQualityReport
    """
    report = DataQualityReport()

    transactions = load_capital_transactions(None, report)
    requests = load_purchase_requests(None, report)
    items = load_line_items(None, report)
    contractors = _optional_table(lambda: load_contractors(None, report), "contractors")
    projects = _optional_table(lambda: load_projects(None), "projects")
    investors = _optional_table(lambda: load_investors(None), "investors")

    report.log_summary("ledger load")
    logger.info(
        f"Loaded ledger snapshot: {len(transactions):,} transactions, "
        f"{len(requests):,} purchase requests, {len(items):,} line items"
    )

    return LedgerSnapshot(
        transactions=transactions,
        purchase_requests=requests,
        line_items=items,
        investors=investors,
        projects=projects,
        contractors=contractors,
        quality=report,
    )


def snapshot_from_rows(
    transactions: Rows = None,
    purchase_requests: Rows = None,
    line_items: Rows = None,
    contractors: Rows = None,
    projects: Rows = None,
    investors: Rows = None,
) -> LedgerSnapshot:
    """Build a snapshot from in-memory rows (same normalization as load_snapshot)."""
    report = DataQualityReport()
    snap = LedgerSnapshot(
        transactions=load_capital_transactions(_frame(transactions), report),
        purchase_requests=load_purchase_requests(_frame(purchase_requests), report),
        line_items=load_line_items(_frame(line_items), report),
        contractors=load_contractors(_frame(contractors), report),
        projects=load_projects(_frame(projects)),
        investors=load_investors(_frame(investors)),
        quality=report,
    )
    report.log_summary("ledger rows")
    return snap
