"""
Unit Tests for Ledger Helpers
==============================
"""

from datetime import timedelta

from conftest import ts
from ledger import completed, of_type, group_by, total_amount, date_range, earliest
from models import CapitalTransaction


def _tx(i, amount, ttype="deployment", status="completed", created_at=None, request="pr-1"):
    return CapitalTransaction(id=f"tx-{i}", amount=amount, transaction_type=ttype, status=status,
                              created_at=created_at, purchase_request_id=request)


class TestFilters:
    """Status and type filters."""

    def test_completed_drops_other_statuses(self):
        rows = [_tx(1, 10), _tx(2, 20, status="pending"), _tx(3, 30, status="failed"),
                _tx(4, 40, status="rejected")]
        assert [r.id for r in completed(rows)] == ["tx-1"]

    def test_of_type_accepts_several_types(self):
        rows = [_tx(1, 10), _tx(2, 20, ttype="return"), _tx(3, 30, ttype="inflow")]
        assert [r.id for r in of_type(rows, "deployment", "return")] == ["tx-1", "tx-2"]

    def test_filters_do_not_mutate_input(self):
        rows = [_tx(1, 10), _tx(2, 20, status="pending")]
        before = list(rows)
        completed(rows)
        of_type(rows, "return")
        assert rows == before


class TestGrouping:

    def test_group_by_preserves_order_and_drops_none(self):
        rows = [_tx(1, 10, request="b"), _tx(2, 20, request="a"), _tx(3, 30, request=None),
                _tx(4, 40, request="b")]
        groups = group_by(rows, lambda t: t.purchase_request_id)
        assert list(groups) == ["b", "a"]
        assert [r.id for r in groups["b"]] == ["tx-1", "tx-4"]

    def test_total_amount(self):
        assert total_amount([_tx(1, 10.5), _tx(2, 20)]) == 30.5
        assert total_amount([]) == 0.0


class TestDates:

    def test_date_range_ignores_undated_rows(self):
        t0 = ts(2024, 1, 1)
        rows = [_tx(1, 1, created_at=t0 + timedelta(days=5)), _tx(2, 1),
                _tx(3, 1, created_at=t0)]
        assert date_range(rows) == (t0, t0 + timedelta(days=5))
        assert earliest(rows) == t0

    def test_date_range_empty(self):
        assert date_range([_tx(1, 1)]) == (None, None)
