"""Per-user credit ledger: balances, authorization holds and transaction log.

Every balance change goes through a credit_transactions row written in the
same transaction, so a user's balance always equals the sum of their
transactions. Holds reserve an estimated cost between authorize() and
settle()/release(); available credits are the balance minus active holds.
"""

import logging
import math
import sqlite3
import time
import uuid
from typing import Callable, Optional

from config.exceptions import DatabaseError, SettlementFailedError
from config.settings import Settings
from models.billing import Authorization, BillingSummary, CreditCosts, CreditTransaction
from models.database import Database
from models.enums import AuthorizationPath, TransactionType

logger = logging.getLogger(__name__)


def compute_search_cost(total_pages: int, pages_per_credit: int) -> int:
    """Credits for a generated result page: whole credits, rounded up."""
    if total_pages <= 0:
        return 0
    return math.ceil(total_pages / pages_per_credit)


class CreditLedger:
    """Credit accounting on top of the shared SQLite store."""

    def __init__(
        self,
        db: Database,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.settings = settings or Settings()
        self._clock = clock

    # ---- Accounts ----

    def open_account(self, user_id: str, signup_credits: Optional[int] = None) -> int:
        """Create the billing row for a new user and apply the signup grant.

        Returns:
            The starting balance.
        """
        credits = self.settings.signup_credits if signup_credits is None else signup_credits
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_billing (user_id, credits) VALUES (?, 0)",
                (user_id,),
            )
            reference = f"signup:{user_id}"
            already_granted = conn.execute(
                "SELECT 1 FROM credit_transactions WHERE reference = ?", (reference,)
            ).fetchone()
            if credits > 0 and not already_granted:
                self._apply(conn, user_id, credits, TransactionType.SIGNUP, "Signup credits", reference)
        logger.info("Account opened: user=%s, credits=%d", user_id, credits)
        return self.balance(user_id)

    def grant(self, user_id: str, amount: int, description: str = "Credit grant") -> CreditTransaction:
        """Add credits to a user's balance (admin top up)."""
        if amount <= 0:
            raise ValueError("Grant amount must be positive")
        with self.db.transaction() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO user_billing (user_id, credits) VALUES (?, 0)",
                (user_id,),
            )
            txn = self._apply(conn, user_id, amount, TransactionType.GRANT, description, None)
        logger.info("Granted %d credits to user=%s", amount, user_id)
        return txn

    def balance(self, user_id: str) -> int:
        with self.db.connection() as conn:
            return self._balance(conn, user_id)

    def summary(self, user_id: str) -> BillingSummary:
        with self.db.connection() as conn:
            return BillingSummary(
                user_id=user_id,
                credits=self._balance(conn, user_id),
                held_credits=self._held(conn, user_id),
            )

    def costs_for_model(self, model_id: int) -> CreditCosts:
        """Credit costs for a model, with defaults for missing values."""
        model = self.db.get_model(model_id)
        if model is None:
            logger.warning("No active model %s, using default credit costs", model_id)
            return CreditCosts(
                search_credits=self.settings.default_search_credits,
                page_generation_credits=self.settings.default_page_generation_credits,
            )
        return CreditCosts(
            search_credits=(
                model.search_credits if model.search_credits is not None
                else self.settings.default_search_credits
            ),
            page_generation_credits=(
                model.page_generation_credits if model.page_generation_credits is not None
                else self.settings.default_page_generation_credits
            ),
        )

    # ---- Authorization ----

    def authorize(self, user_id: str, model_id: int) -> Authorization:
        """Decide whether user_id may run a generating search with model_id.

        A user with their own provider key for the model's domain is allowed
        on the api_key path and never metered. Otherwise the model's search
        cost must be covered by available credits, and a hold for it is
        written in the same transaction as the check.
        """
        model = self.db.get_model(model_id)
        if model is not None and self.db.has_api_key(user_id, model.domain_code):
            logger.info("Authorized user=%s via api_key (%s)", user_id, model.domain_code)
            return Authorization(user_id=user_id, allowed=True, path=AuthorizationPath.API_KEY)

        estimate = self.costs_for_model(model_id).search_credits
        now = self._clock()
        with self.db.transaction() as conn:
            conn.execute("DELETE FROM credit_holds WHERE expires_at <= ?", (now,))
            available = self._balance(conn, user_id) - self._held(conn, user_id)
            if available < estimate:
                logger.info(
                    "Denied user=%s: required=%d, available=%d", user_id, estimate, available,
                )
                return Authorization(
                    user_id=user_id, allowed=False, estimated_cost=estimate, available=max(available, 0),
                )
            hold_id = str(uuid.uuid4())
            conn.execute(
                "INSERT INTO credit_holds (id, user_id, amount, expires_at) VALUES (?, ?, ?, ?)",
                (hold_id, user_id, estimate, now + self.settings.credit_hold_ttl_seconds),
            )

        logger.info("Authorized user=%s via credits: hold=%s, estimate=%d", user_id, hold_id, estimate)
        return Authorization(
            user_id=user_id, allowed=True, path=AuthorizationPath.CREDITS,
            estimated_cost=estimate, available=available, hold_id=hold_id,
        )

    def extend_hold(self, authorization: Authorization) -> bool:
        """Keep the hold of a still-running search alive for another TTL.

        Returns:
            False if there is no hold or it already expired.
        """
        if not authorization.hold_id:
            return False
        now = self._clock()
        try:
            with self.db.connection() as conn:
                cur = conn.execute(
                    "UPDATE credit_holds SET expires_at = ? WHERE id = ? AND expires_at > ?",
                    (now + self.settings.credit_hold_ttl_seconds, authorization.hold_id, now),
                )
        except sqlite3.Error as e:
            raise DatabaseError(f"Failed to extend hold {authorization.hold_id}: {e}") from e
        return cur.rowcount == 1

    def release(self, authorization: Authorization) -> None:
        """Drop the hold of an authorization that will not be settled."""
        if not authorization.hold_id:
            return
        with self.db.connection() as conn:
            conn.execute("DELETE FROM credit_holds WHERE id = ?", (authorization.hold_id,))
        logger.debug("Released hold %s", authorization.hold_id)

    def settle(
        self,
        authorization: Authorization,
        actual_pages: int,
        description: str,
        reference: Optional[str] = None,
    ) -> Optional[CreditTransaction]:
        """Debit the actual cost of a committed search and release its hold.

        The reference (defaults to the hold id) is unique in the transaction
        log, so settling the same search twice is a no-op returning None.
        Unmetered authorizations are never debited.

        Raises:
            SettlementFailedError: If the debit cannot be applied.
        """
        if not authorization.is_metered:
            return None

        cost = compute_search_cost(actual_pages, self.settings.pages_per_credit)
        reference = reference or authorization.hold_id
        user_id = authorization.user_id
        shortfall: Optional[int] = None
        txn: Optional[CreditTransaction] = None

        try:
            with self.db.transaction() as conn:
                if authorization.hold_id:
                    conn.execute("DELETE FROM credit_holds WHERE id = ?", (authorization.hold_id,))
                if reference and conn.execute(
                    "SELECT 1 FROM credit_transactions WHERE reference = ?", (reference,)
                ).fetchone():
                    logger.info("Settlement %s already applied, skipping", reference)
                    return None
                if cost > 0:
                    balance = self._balance(conn, user_id)
                    if balance < cost:
                        shortfall = cost - balance
                    else:
                        txn = self._apply(
                            conn, user_id, -cost, TransactionType.SEARCH, description, reference,
                        )
        except sqlite3.Error as e:
            raise SettlementFailedError(user_id, cost, f"database error: {e}") from e

        if shortfall is not None:
            raise SettlementFailedError(user_id, cost, f"balance short by {shortfall} credits")
        if txn:
            logger.info("Settled %s: user=%s, pages=%d, cost=%d", reference, user_id, actual_pages, cost)
        return txn

    def record_settlement_failure(self, error: SettlementFailedError, reference: Optional[str]) -> None:
        """Keep a failed settlement for reconciliation."""
        logger.error(
            "Settlement failure: user=%s, reference=%s, amount=%d, reason=%s",
            error.user_id, reference, error.amount, error.reason,
        )
        try:
            with self.db.connection() as conn:
                conn.execute(
                    "INSERT INTO settlement_failures (user_id, reference, amount, reason) VALUES (?, ?, ?, ?)",
                    (error.user_id, reference, error.amount, error.reason),
                )
        except sqlite3.Error as e:
            logger.error("Could not record settlement failure for %s: %s", reference, e)

    def settlement_failures(self, user_id: Optional[str] = None) -> list[dict]:
        with self.db.connection() as conn:
            sql = "SELECT * FROM settlement_failures"
            params: tuple = ()
            if user_id:
                sql += " WHERE user_id = ?"
                params = (user_id,)
            return [dict(r) for r in conn.execute(sql + " ORDER BY id", params).fetchall()]

    # ---- History ----

    def transactions(self, user_id: str, page: int = 1, limit: int = 50) -> tuple[list[CreditTransaction], int]:
        """Newest-first page of a user's transactions and the total count."""
        page = max(page, 1)
        limit = max(min(limit, 100), 1)
        with self.db.connection() as conn:
            total = conn.execute(
                "SELECT COUNT(*) AS n FROM credit_transactions WHERE user_id = ?", (user_id,),
            ).fetchone()["n"]
            rows = conn.execute(
                "SELECT * FROM credit_transactions WHERE user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                (user_id, limit, (page - 1) * limit),
            ).fetchall()
        return [self._row_to_transaction(r) for r in rows], total

    # ---- Internals ----

    def _apply(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        amount: int,
        transaction_type: TransactionType,
        description: str,
        reference: Optional[str],
    ) -> CreditTransaction:
        """Change a balance and append the matching transaction. Caller owns the transaction."""
        try:
            cur = conn.execute(
                "UPDATE user_billing SET credits = credits + ?, updated_at = CURRENT_TIMESTAMP "
                "WHERE user_id = ?",
                (amount, user_id),
            )
            if cur.rowcount == 0:
                raise DatabaseError(f"No billing account for user {user_id}")
            txn_cur = conn.execute(
                "INSERT INTO credit_transactions (user_id, amount, transaction_type, description, reference) "
                "VALUES (?, ?, ?, ?, ?)",
                (user_id, amount, transaction_type.value, description, reference),
            )
        except sqlite3.IntegrityError as e:
            raise DatabaseError(f"Credit transaction rejected: {e}", {"user_id": user_id}) from e
        return CreditTransaction(
            id=txn_cur.lastrowid, user_id=user_id, amount=amount,
            transaction_type=transaction_type, description=description, reference=reference,
        )

    def _balance(self, conn: sqlite3.Connection, user_id: str) -> int:
        row = conn.execute("SELECT credits FROM user_billing WHERE user_id = ?", (user_id,)).fetchone()
        return row["credits"] if row else 0

    def _held(self, conn: sqlite3.Connection, user_id: str) -> int:
        row = conn.execute(
            "SELECT COALESCE(SUM(amount), 0) AS held FROM credit_holds WHERE user_id = ? AND expires_at > ?",
            (user_id, self._clock()),
        ).fetchone()
        return row["held"]

    def _row_to_transaction(self, row) -> CreditTransaction:
        return CreditTransaction(
            id=row["id"], user_id=row["user_id"], amount=row["amount"],
            transaction_type=TransactionType(row["transaction_type"]),
            description=row["description"] or "", reference=row["reference"],
            created_at=row["created_at"],
        )

