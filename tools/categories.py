"""Ledger-wide category label operations.

Categories are free-text labels on transactions, not records of their own.
"""

from collections import Counter
from dataclasses import replace
from typing import Iterable, List, Optional, Tuple
from models.transaction import Transaction


def rename_category(
    transactions: Iterable[Transaction], old_name: str, new_name: str
) -> List[Transaction]:
    """Return copies of the transactions labelled `old_name`, relabelled `new_name`."""
    return [replace(t, category=new_name) for t in transactions if t.category == old_name]


def delete_category(transactions: Iterable[Transaction], name: str) -> List[Transaction]:
    """Return copies of the transactions labelled `name` with the label cleared.

    The transactions themselves are kept.
    """
    return rename_category(transactions, name, "")


def list_categories(transactions: Iterable[Transaction]) -> List[Tuple[str, int]]:
    """Distinct non-empty labels with how many transactions use each.

    Returns:
        List of (name, count), most used first, ties by name.
    """
    counts = Counter(t.category for t in transactions if t.category)
    return sorted(counts.items(), key=lambda item: (-item[1], item[0]))


def most_frequent_category(
    transactions: Iterable[Transaction], description: str
) -> Optional[str]:
    """Suggest a category for a new entry from earlier ones with the same description.

    Matching ignores case and surrounding whitespace. When earlier entries
    disagree, the label used most often wins.

    Returns:
        The suggested label, or None if nothing matches.
    """
    wanted = description.strip().lower()
    if not wanted:
        return None

    counts = Counter(
        t.category
        for t in transactions
        if t.category and t.description.strip().lower() == wanted
    )
    if not counts:
        return None
    return counts.most_common(1)[0][0]
