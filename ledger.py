"""
ledger.py
Pure helpers over capital transaction rows

Every aggregate in the engine is built from these. Nothing here mutates
its input; each function returns a new collection.
"""

from datetime import datetime
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Tuple

from models import CapitalTransaction


def completed(rows: Iterable[CapitalTransaction]) -> List[CapitalTransaction]:
    """Keep only completed transactions. Pending, failed and rejected rows never count."""
    return [r for r in rows if r.is_completed]


def of_type(rows: Iterable[CapitalTransaction], *transaction_types: str) -> List[CapitalTransaction]:
    """Keep rows whose transaction_type is one of transaction_types."""
    wanted = set(transaction_types)
    return [r for r in rows if r.transaction_type in wanted]


def group_by(
    rows: Iterable[CapitalTransaction],
    key_fn: Callable[[CapitalTransaction], Optional[Hashable]],
) -> Dict[Hashable, List[CapitalTransaction]]:
    """
    Group rows by key_fn, preserving input order within each group

    Rows whose key is None are dropped: an unattributed transaction has
    no place in a keyed rollup.
    """
    groups: Dict[Hashable, List[CapitalTransaction]] = {}
    for r in rows:
        key = key_fn(r)
        if key is None:
            continue
        groups.setdefault(key, []).append(r)
    return groups


def total_amount(rows: Iterable[CapitalTransaction]) -> float:
    return float(sum(r.amount for r in rows))


def date_range(rows: Iterable[CapitalTransaction]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """(earliest, latest) created_at over rows; rows without a timestamp are ignored."""
    stamps = [r.created_at for r in rows if r.created_at is not None]
    if not stamps:
        return None, None
    return min(stamps), max(stamps)


def earliest(rows: Iterable[CapitalTransaction]) -> Optional[datetime]:
    return date_range(rows)[0]
