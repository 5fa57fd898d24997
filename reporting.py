"""
reporting.py
Tabular views of the finance overview and display formatting
"""

import pandas as pd
from typing import Iterable, List

from config import TX_INFLOW, TX_DEPLOYMENT, TX_RETURN, TX_WITHDRAWAL
from ledger import completed
from models import CapitalTransaction
from utils import fmt_date, fmt_num, fmt_pct

PROJECT_COLUMNS = {
    "project_name": "Project",
    "contractor_name": "Contractor",
    "request_count": "Requests",
    "total_requested": "Requested",
    "total_funded": "Funded",
    "total_returns": "Returned",
    "outstanding": "Outstanding",
    "platform_fee": "Platform Fee",
    "participation_fee": "Participation Fee",
    "total_due": "Total Due",
    "platform_outstanding": "Platform Outstanding",
    "days_outstanding": "Days",
}

REQUEST_COLUMNS = {
    "request_id": "Request",
    "project_name": "Project",
    "contractor_name": "Contractor",
    "created_at": "Created",
    "total_requested": "Requested",
    "total_requested_with_tax": "Requested incl. Tax",
    "total_funded": "Funded",
    "total_returns": "Returned",
    "outstanding": "Outstanding",
    "days_outstanding": "Days",
    "platform_fee": "Platform Fee",
    "participation_fee": "Participation Fee",
    "total_due": "Total Due",
}

INVESTOR_COLUMNS = {
    "investor_name": "Investor",
    "totalInvested": "Invested",
    "totalReturns": "Profit",
    "currentValue": "Current Value",
    "roi": "XIRR",
    "netRoi": "Net XIRR",
    "managementFees": "Mgmt Fees",
    "performanceFees": "Perf Fees",
    "capitalInflow": "Inflow",
    "capitalReturns": "Capital Returned",
    "netCapitalReturns": "Net Returned",
    "availableCapital": "Available",
    "activeInvestments": "Active",
    "completedInvestments": "Completed",
}

MONEY_LABELS = {
    "Requested", "Requested incl. Tax", "Funded", "Returned", "Outstanding",
    "Platform Fee", "Participation Fee", "Total Due", "Platform Outstanding",
    "Invested", "Profit", "Current Value", "Mgmt Fees", "Perf Fees", "Inflow",
    "Capital Returned", "Net Returned", "Available",
}
PCT_LABELS = {"XIRR", "Net XIRR"}
DATE_LABELS = {"Created"}


def _table(rows: Iterable[dict], columns: dict) -> pd.DataFrame:
    df = pd.DataFrame(list(rows))
    for c in columns:
        if c not in df.columns:
            df[c] = None
    return df[list(columns)].rename(columns=columns)


def projects_table(projects: List[dict]) -> pd.DataFrame:
    """Project rollups as a DataFrame, in the order given (descending funded)."""
    return _table(projects, PROJECT_COLUMNS)


def requests_table(request_rows: List[dict]) -> pd.DataFrame:
    return _table(request_rows, REQUEST_COLUMNS)


def investors_table(investors: List[dict]) -> pd.DataFrame:
    """
    Investor metrics as a DataFrame

    Investors without a name on file are labelled by id.
    """
    df = _table(investors, INVESTOR_COLUMNS)
    if not df.empty:
        ids = pd.Series([i.get("investor_id") for i in investors], index=df.index)
        df["Investor"] = df["Investor"].where(df["Investor"].notna(), ids)
    return df


def summary_table(summary: dict) -> pd.DataFrame:
    """Platform summary as a two-column Metric / Value table"""
    labels = {
        "total_projects": "Projects",
        "total_requests": "Purchase Requests",
        "total_contractors": "Contractors",
        "total_investors": "Investors",
        "total_requested": "Requested",
        "total_funded": "Funded",
        "total_returns": "Returned",
        "outstanding": "Outstanding",
        "platform_fee": "Platform Fee",
        "participation_fee": "Participation Fee",
        "total_due": "Total Due",
        "platform_outstanding": "Platform Outstanding",
    }
    return pd.DataFrame(
        [{"Metric": label, "Value": summary.get(key, 0)} for key, label in labels.items()]
    )


def format_table(df: pd.DataFrame) -> pd.DataFrame:
    """Display copy of a report table: money with commas, XIRR as %, dates as ISO"""
    out = df.copy()
    for c in out.columns:
        if c in MONEY_LABELS:
            out[c] = out[c].map(fmt_num)
        elif c in PCT_LABELS:
            out[c] = out[c].map(fmt_pct)
        elif c in DATE_LABELS:
            out[c] = out[c].map(fmt_date)
    return out


def cashflows_monthly(transactions: Iterable[CapitalTransaction]) -> pd.DataFrame:
    """
    Monthly totals of completed capital movements by type

    Net = inflow + return - deployment - withdrawal (platform account view).
    Undated rows are left out.

    Returns:
        DataFrame with month, inflow, deployment, return, withdrawal, net
    """
    rows = [
        {"created_at": t.created_at, "transaction_type": t.transaction_type, "amount": t.amount}
        for t in completed(transactions) if t.created_at is not None
    ]
    types = [TX_INFLOW, TX_DEPLOYMENT, TX_RETURN, TX_WITHDRAWAL]
    if not rows:
        return pd.DataFrame(columns=["month"] + types + ["net"])

    f = pd.DataFrame(rows)
    f["month"] = pd.to_datetime(f["created_at"], utc=True).dt.tz_localize(None).dt.to_period("M").dt.to_timestamp()

    g = f.pivot_table(index="month", columns="transaction_type", values="amount",
                      aggfunc="sum", fill_value=0.0)
    for t in types:
        if t not in g.columns:
            g[t] = 0.0
    g = g[types].reset_index()
    g.columns.name = None
    g["net"] = g[TX_INFLOW] + g[TX_RETURN] - g[TX_DEPLOYMENT] - g[TX_WITHDRAWAL]
    return g
