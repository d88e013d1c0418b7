"""Billing package: credit ledger with authorization holds."""

from billing.ledger import CreditLedger, compute_search_cost

__all__ = ["CreditLedger", "compute_search_cost"]
