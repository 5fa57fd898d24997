"""
Pytest Configuration and Fixtures
==================================
Shared ledgers, timestamps and a throwaway SQLite store.
"""

import pytest
import numpy as np
from datetime import datetime, timedelta, timezone

import config
from models import CapitalTransaction, PurchaseRequest, FinanceTerms


def ts(*args) -> datetime:
    """UTC datetime shorthand: ts(2024, 1, 1)"""
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def t0():
    return ts(2024, 1, 1)


@pytest.fixture
def default_terms():
    return FinanceTerms()


@pytest.fixture
def end_to_end_rows(t0):
    """
    One request, one investor: 1,000,000 deployed, 1,150,000 returned
    182 days later.
    """
    return {
        'transactions': [
            {'id': 'tx-1', 'amount': 1_000_000, 'transaction_type': 'deployment',
             'status': 'completed', 'created_at': t0.isoformat(),
             'investor_id': 'inv-1', 'purchase_request_id': 'pr-1'},
            {'id': 'tx-2', 'amount': 1_150_000, 'transaction_type': 'return',
             'status': 'completed', 'created_at': (t0 + timedelta(days=182)).isoformat(),
             'investor_id': 'inv-1', 'purchase_request_id': 'pr-1'},
        ],
        'purchase_requests': [
            {'id': 'pr-1', 'project_id': 'proj-1', 'contractor_id': 'con-1',
             'status': 'approved', 'created_at': t0.isoformat()},
        ],
        'line_items': [
            {'purchase_request_id': 'pr-1', 'requested_qty': 1000, 'unit_rate': 1000, 'tax_percent': 18},
        ],
        'contractors': [
            {'id': 'con-1', 'company_name': 'Acme Builders'},
        ],
        'projects': [
            {'id': 'proj-1', 'project_name': 'Riverside Tower', 'project_id_external': 'EXT-1'},
        ],
        'investors': [
            {'id': 'inv-1', 'name': 'Asha Capital', 'email': 'Ops@Asha.example'},
        ],
    }


def random_ledger(seed: int, n_requests: int = 8, n_rows: int = 60, statuses=("completed",)):
    """Random transactions over a fixed set of requests and investors."""
    rng = np.random.default_rng(seed)
    requests = tuple(
        PurchaseRequest(id=f"pr-{i}", project_id=f"proj-{i % 3}", contractor_id=f"con-{i % 2}",
                        created_at=ts(2024, 1, 1) + timedelta(days=int(i)))
        for i in range(n_requests)
    )
    types = [config.TX_DEPLOYMENT, config.TX_RETURN, config.TX_INFLOW, config.TX_WITHDRAWAL]
    rows = []
    for k in range(n_rows):
        rows.append(CapitalTransaction(
            id=f"tx-{seed}-{k}",
            amount=float(rng.integers(1, 500) * 1000),
            transaction_type=types[int(rng.integers(0, len(types)))],
            status=statuses[int(rng.integers(0, len(statuses)))],
            created_at=ts(2024, 1, 1) + timedelta(days=int(rng.integers(0, 365))),
            investor_id=f"inv-{int(rng.integers(0, 4))}",
            purchase_request_id=f"pr-{int(rng.integers(0, n_requests))}",
        ))
    return tuple(rows), requests


@pytest.fixture
def temp_db(tmp_path, monkeypatch):
    """Point the data layer at an empty SQLite file for the test."""
    path = tmp_path / "ledger.db"
    monkeypatch.setattr(config, "DB_PATH", str(path))
    return path
