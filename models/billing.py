"""Credit ledger data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models.enums import AuthorizationPath, TransactionType


@dataclass
class CreditCosts:
    search_credits: int
    page_generation_credits: int


@dataclass
class Authorization:
    """Outcome of CreditLedger.authorize().

    A credits-path authorization carries the id of the hold reserving
    the estimated cost until settle() or release().
    """
    user_id: str
    allowed: bool
    path: Optional[AuthorizationPath] = None
    estimated_cost: int = 0
    available: int = 0
    hold_id: Optional[str] = None

    @property
    def is_metered(self) -> bool:
        return self.path == AuthorizationPath.CREDITS


@dataclass
class CreditTransaction:
    id: Optional[int] = None
    user_id: str = ""
    amount: int = 0  # Signed; debits are negative
    transaction_type: TransactionType = TransactionType.SEARCH
    description: str = ""
    reference: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class BillingSummary:
    user_id: str
    credits: int
    held_credits: int

    @property
    def available(self) -> int:
        return max(self.credits - self.held_credits, 0)
