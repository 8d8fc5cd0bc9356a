# spt/filters.py
from typing import List

from .models import AccountFilter, AccountSnapshot


def filter_mismatches(snapshot: AccountSnapshot, account_filter: AccountFilter) -> List[str]:
    """Names of the filter fields rejecting the snapshot. Blank fields are ignored."""
    mismatches = []
    if account_filter.category_name and snapshot.category != account_filter.category_name:
        mismatches.append("category_name")
    if account_filter.client_name and snapshot.client != account_filter.client_name:
        mismatches.append("client_name")
    if account_filter.login_prefix and not snapshot.login.startswith(account_filter.login_prefix):
        mismatches.append("login_prefix")
    if account_filter.name_prefix and not snapshot.name.startswith(account_filter.name_prefix):
        mismatches.append("name_prefix")
    return mismatches


def account_matches_filter(snapshot: AccountSnapshot, account_filter: AccountFilter) -> bool:
    return not filter_mismatches(snapshot, account_filter)
