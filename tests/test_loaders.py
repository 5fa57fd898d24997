"""
Unit Tests for Loaders
=======================
Row normalization at the ingestion boundary.
"""

import pytest
import pandas as pd

from loaders import (load_capital_transactions, load_line_items, load_contractors,
                     load_projects, load_investors, load_purchase_requests,
                     snapshot_from_rows, coerce_non_negative)
from exposure import aggregate_exposure
from models import DataQualityReport


class TestCapitalTransactions:

    def test_missing_required_column_raises(self):
        with pytest.raises(ValueError, match="amount"):
            load_capital_transactions(pd.DataFrame([{'transaction_type': 'deployment',
                                                     'status': 'completed'}]))

    def test_malformed_amounts_become_zero_and_are_counted(self):
        report = DataQualityReport()
        rows = load_capital_transactions([
            {'id': 'a', 'amount': 'abc', 'transaction_type': 'deployment', 'status': 'completed'},
            {'id': 'b', 'amount': -50, 'transaction_type': 'deployment', 'status': 'completed'},
            {'id': 'c', 'amount': '125.5', 'transaction_type': 'deployment', 'status': 'completed'},
        ], report)
        assert [t.amount for t in rows] == [0.0, 0.0, 125.5]
        assert report.counts['malformed_amount'] == 2

    def test_labels_are_normalized(self):
        rows = load_capital_transactions([
            {'id': 'a', 'amount': 1, 'transaction_type': ' Deployment ', 'status': 'COMPLETED'},
        ])
        assert rows[0].transaction_type == 'deployment'
        assert rows[0].is_completed

    def test_ids_are_trimmed_and_missing_ids_assigned(self):
        report = DataQualityReport()
        rows = load_capital_transactions([
            {'id': None, 'amount': 1, 'transaction_type': 'return', 'status': 'completed',
             'purchase_request_id': '  pr-9  '},
        ], report)
        assert rows[0].id == 'row-0'
        assert rows[0].purchase_request_id == 'pr-9'
        assert report.counts['missing_id'] == 1

    def test_timestamps_are_utc(self):
        rows = load_capital_transactions([
            {'id': 'a', 'amount': 1, 'transaction_type': 'return', 'status': 'completed',
             'created_at': '2024-03-01T10:00:00+05:30'},
        ])
        assert rows[0].created_at.utcoffset().total_seconds() == 0
        assert rows[0].created_at.hour == 4

    def test_empty_input(self):
        assert load_capital_transactions([]) == ()


class TestLineItems:

    def test_tax_defaults_to_zero(self):
        items = load_line_items([
            {'purchase_request_id': 'pr-1', 'requested_qty': '10', 'unit_rate': '250'},
        ])
        assert items[0].amount == 2500.0
        assert items[0].tax_amount == 0.0

    def test_malformed_quantity_and_rate(self):
        report = DataQualityReport()
        items = load_line_items([
            {'purchase_request_id': 'pr-1', 'requested_qty': 'x', 'unit_rate': 5, 'tax_percent': 18},
            {'purchase_request_id': 'pr-1', 'requested_qty': 2, 'unit_rate': -1, 'tax_percent': 18},
        ], report)
        assert [i.amount for i in items] == [0.0, 0.0]
        assert report.counts['malformed_quantity'] == 1
        assert report.counts['malformed_rate'] == 1


class TestContractors:

    def test_unset_terms_use_defaults(self):
        contractors = load_contractors([{'id': 'c1', 'company_name': 'Acme'}])
        terms = contractors[0].terms
        assert terms.platform_fee_rate == 0.0025
        assert terms.platform_fee_cap == 25000.0
        assert terms.participation_fee_rate_daily == 0.001

    def test_malformed_terms_become_zero(self):
        report = DataQualityReport()
        contractors = load_contractors([
            {'id': 'c1', 'platform_fee_rate': 'n/a', 'platform_fee_cap': -5,
             'participation_fee_rate_daily': 0.002},
        ], report)
        terms = contractors[0].terms
        assert terms.platform_fee_rate == 0.0
        assert terms.platform_fee_cap == 0.0
        assert terms.participation_fee_rate_daily == 0.002
        assert report.counts['malformed_rate'] == 2


class TestDisplayTables:

    def test_projects_trim_ids(self):
        projects = load_projects([{'id': ' p1 ', 'project_name': 'Tower',
                                   'project_id_external': ' EXT-1 '}])
        assert projects[0].id == 'p1'
        assert projects[0].project_id_external == 'EXT-1'

    def test_investor_email_lowercased(self):
        investors = load_investors([{'id': 'i1', 'email': ' Ops@Example.COM '}])
        assert investors[0].email == 'ops@example.com'
        assert investors[0].status == 'active'

    def test_requests_without_id_skipped(self):
        report = DataQualityReport()
        requests = load_purchase_requests([{'id': ''}, {'id': 'pr-1'}], report)
        assert [r.id for r in requests] == ['pr-1']
        assert report.counts['missing_id'] == 1


class TestSnapshot:

    def test_snapshot_from_rows(self, end_to_end_rows):
        snap = snapshot_from_rows(**end_to_end_rows)
        assert len(snap.transactions) == 2
        assert snap.contractors[0].company_name == 'Acme Builders'
        assert snap.quality.total == 0

    def test_numeric_ids_join_across_missing_values(self):
        snap = snapshot_from_rows(
            transactions=[
                {'id': 1, 'amount': 5000, 'transaction_type': 'inflow', 'status': 'completed',
                 'investor_id': 7, 'purchase_request_id': None},
                {'id': 2, 'amount': 1000, 'transaction_type': 'deployment', 'status': 'completed',
                 'investor_id': 7, 'purchase_request_id': 42},
            ],
            purchase_requests=[{'id': 42, 'project_id': 3}],
        )
        assert [t.purchase_request_id for t in snap.transactions] == [None, '42']
        assert snap.purchase_requests[0].id == '42'

        exposure = aggregate_exposure(snap)
        assert exposure.request('42').total_funded == 1000
        assert 'missing_request' not in exposure.quality.counts

    def test_float_widened_frame_ids(self):
        df = pd.DataFrame([
            {'id': 'a', 'amount': 1, 'transaction_type': 'deployment', 'status': 'completed',
             'purchase_request_id': None},
            {'id': 'b', 'amount': 1, 'transaction_type': 'deployment', 'status': 'completed',
             'purchase_request_id': 42},
        ])
        assert df['purchase_request_id'].dtype == float
        rows = load_capital_transactions(df)
        assert rows[1].purchase_request_id == '42'

    def test_coerce_keeps_missing_when_asked(self):
        report = DataQualityReport()
        out = coerce_non_negative(pd.Series([None, '1.5', 'bad']), report, 'malformed_rate',
                                  missing_is_malformed=False)
        assert pd.isna(out.iloc[0])
        assert out.iloc[1] == 1.5
        assert out.iloc[2] == 0.0
        assert report.counts['malformed_rate'] == 1
