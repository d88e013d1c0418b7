"""User router: billing summary and credit transaction history."""

import math

from fastapi import APIRouter, Depends, Query, Request

from models.catalog import User
from server.dependencies.auth import require_user
from server.schemas.responses import (
    BillingResponse,
    Pagination,
    TransactionOut,
    TransactionsResponse,
)

user_router = APIRouter(prefix="/user", tags=["User"])

_MAX_PAGE_LIMIT = 100


@user_router.get("/billing", response_model=BillingResponse)
def get_billing(request: Request, user: User = Depends(require_user)) -> BillingResponse:
    """Current balance, credits held by running searches and what is left."""
    return BillingResponse.from_summary(request.app.state.ledger.summary(user.id))


@user_router.get("/transactions", response_model=TransactionsResponse)
def get_transactions(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=50, ge=1),
    user: User = Depends(require_user),
) -> TransactionsResponse:
    """Newest-first credit transactions. limit is capped at 100."""
    limit = min(limit, _MAX_PAGE_LIMIT)
    transactions, total = request.app.state.ledger.transactions(user.id, page=page, limit=limit)
    total_pages = math.ceil(total / limit)
    return TransactionsResponse(
        transactions=[TransactionOut.from_transaction(t) for t in transactions],
        pagination=Pagination(
            page=page, limit=limit, total=total,
            total_pages=total_pages, has_more=page < total_pages,
        ),
    )
