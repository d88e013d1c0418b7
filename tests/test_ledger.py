"""Tests for the credit ledger: balances, holds, settlement and history."""

import pytest


class TestComputeSearchCost:
    @pytest.mark.parametrize("pages,expected", [(0, 0), (1, 1), (10, 1), (11, 2), (36, 4), (100, 10)])
    def test_rounds_up(self, pages, expected):
        from billing.ledger import compute_search_cost
        assert compute_search_cost(pages, 10) == expected


class TestAccounts:
    def test_open_account_applies_signup_credits(self, db, ledger):
        from models.enums import TransactionType
        user = db.create_user("new@example.com")
        assert ledger.open_account(user.id) == 50
        transactions, total = ledger.transactions(user.id)
        assert total == 1
        assert transactions[0].transaction_type == TransactionType.SIGNUP

    def test_open_account_is_idempotent(self, db, ledger):
        user = db.create_user("twice@example.com")
        ledger.open_account(user.id, signup_credits=20)
        assert ledger.open_account(user.id, signup_credits=20) == 20
        assert ledger.transactions(user.id)[1] == 1

    def test_zero_signup_credits(self, db, ledger):
        user = db.create_user("broke@example.com")
        assert ledger.open_account(user.id, signup_credits=0) == 0
        assert ledger.transactions(user.id)[1] == 0

    def test_grant(self, ledger, user):
        txn = ledger.grant(user.id, 25, "Top up")
        assert txn.amount == 25
        assert ledger.balance(user.id) == 75

    def test_grant_rejects_non_positive(self, ledger, user):
        with pytest.raises(ValueError):
            ledger.grant(user.id, 0)

    def test_unknown_user_has_zero_balance(self, ledger):
        assert ledger.balance("nobody") == 0


class TestCosts:
    def test_catalog_costs(self, ledger):
        costs = ledger.costs_for_model(2)
        assert (costs.search_credits, costs.page_generation_credits) == (10, 3)

    def test_missing_costs_fall_back_to_defaults(self, db, ledger, settings):
        db.set_model_costs(1, None, None)
        costs = ledger.costs_for_model(1)
        assert costs.search_credits == settings.default_search_credits
        assert costs.page_generation_credits == settings.default_page_generation_credits

    def test_unknown_model_uses_defaults(self, ledger, settings):
        assert ledger.costs_for_model(999).search_credits == settings.default_search_credits


class TestAuthorize:
    def test_credits_path_places_hold(self, ledger, user):
        from models.enums import AuthorizationPath
        auth = ledger.authorize(user.id, 3)
        assert auth.allowed
        assert auth.path == AuthorizationPath.CREDITS
        assert auth.is_metered
        assert auth.estimated_cost == 20
        summary = ledger.summary(user.id)
        assert summary.credits == 50
        assert summary.held_credits == 20
        assert summary.available == 30

    def test_holds_serialize_concurrent_searches(self, ledger, user):
        first = ledger.authorize(user.id, 3)
        second = ledger.authorize(user.id, 3)
        third = ledger.authorize(user.id, 3)
        assert first.allowed and second.allowed
        assert not third.allowed
        assert third.available == 10

    def test_denied_when_short(self, db, ledger):
        user = db.create_user("poor@example.com")
        ledger.open_account(user.id, signup_credits=4)
        auth = ledger.authorize(user.id, 2)
        assert not auth.allowed
        assert auth.path is None
        assert auth.estimated_cost == 10
        assert auth.available == 4
        assert ledger.summary(user.id).held_credits == 0

    def test_api_key_path_skips_credits(self, db, ledger):
        from models.enums import AuthorizationPath
        user = db.create_user("byok@example.com")
        ledger.open_account(user.id, signup_credits=0)
        db.add_api_key(user.id, "anthropic", "sk-test")
        auth = ledger.authorize(user.id, 3)
        assert auth.allowed
        assert auth.path == AuthorizationPath.API_KEY
        assert not auth.is_metered
        assert auth.hold_id is None

    def test_expired_holds_are_ignored(self, db, settings, user):
        from billing.ledger import CreditLedger
        now = [1000.0]
        ledger = CreditLedger(db, settings, clock=lambda: now[0])
        ledger.authorize(user.id, 3)
        ledger.authorize(user.id, 3)
        assert not ledger.authorize(user.id, 3).allowed
        now[0] += settings.credit_hold_ttl_seconds + 1
        assert ledger.authorize(user.id, 3).allowed

    def test_extended_hold_outlives_original_ttl(self, db, settings, user):
        from billing.ledger import CreditLedger
        now = [1000.0]
        ledger = CreditLedger(db, settings, clock=lambda: now[0])
        auth = ledger.authorize(user.id, 3)
        now[0] += settings.credit_hold_ttl_seconds - 1
        assert ledger.extend_hold(auth)
        now[0] += 2
        assert ledger.summary(user.id).held_credits == auth.estimated_cost

    def test_expired_hold_is_not_extended(self, db, settings, user):
        from billing.ledger import CreditLedger
        now = [1000.0]
        ledger = CreditLedger(db, settings, clock=lambda: now[0])
        auth = ledger.authorize(user.id, 3)
        now[0] += settings.credit_hold_ttl_seconds + 1
        assert not ledger.extend_hold(auth)

    def test_api_key_authorization_has_no_hold_to_extend(self, db, ledger, user):
        db.add_api_key(user.id, "anthropic", "sk-test")
        assert not ledger.extend_hold(ledger.authorize(user.id, 3))

    def test_release_frees_hold(self, ledger, user):
        auth = ledger.authorize(user.id, 3)
        ledger.release(auth)
        assert ledger.summary(user.id).held_credits == 0


class TestSettle:
    def test_debits_actual_cost_and_drops_hold(self, ledger, user):
        from models.enums import TransactionType
        auth = ledger.authorize(user.id, 3)
        txn = ledger.settle(auth, actual_pages=36, description="Search", reference="search-1")

        assert txn.amount == -4
        assert txn.transaction_type == TransactionType.SEARCH
        summary = ledger.summary(user.id)
        assert summary.credits == 46
        assert summary.held_credits == 0

    def test_settle_is_idempotent_per_reference(self, ledger, user):
        first = ledger.authorize(user.id, 1)
        ledger.settle(first, 36, "Search", reference="search-1")
        again = ledger.authorize(user.id, 1)
        assert ledger.settle(again, 36, "Search", reference="search-1") is None
        assert ledger.balance(user.id) == 46
        assert ledger.summary(user.id).held_credits == 0

    def test_api_key_authorization_is_never_debited(self, db, ledger, user):
        db.add_api_key(user.id, "anthropic", "sk-test")
        auth = ledger.authorize(user.id, 3)
        assert ledger.settle(auth, 500, "Search", reference="search-1") is None
        assert ledger.balance(user.id) == 50

    def test_shortfall_raises_and_leaves_balance(self, ledger, user):
        from config.exceptions import SettlementFailedError
        auth = ledger.authorize(user.id, 1)
        with pytest.raises(SettlementFailedError) as exc_info:
            ledger.settle(auth, actual_pages=600, description="Search", reference="search-1")
        assert exc_info.value.amount == 60
        assert ledger.balance(user.id) == 50
        assert ledger.summary(user.id).held_credits == 0

    def test_balance_equals_sum_of_transactions(self, ledger, user):
        ledger.grant(user.id, 7)
        for n, pages in enumerate([12, 45, 3]):
            ledger.settle(ledger.authorize(user.id, 1), pages, "Search", reference=f"s-{n}")
        transactions, _ = ledger.transactions(user.id)
        assert sum(t.amount for t in transactions) == ledger.balance(user.id) == 50 + 7 - 2 - 5 - 1

    def test_record_settlement_failure(self, ledger, user):
        from config.exceptions import SettlementFailedError
        error = SettlementFailedError(user.id, 12, "balance short by 2 credits")
        ledger.record_settlement_failure(error, "search-9")
        failures = ledger.settlement_failures(user.id)
        assert len(failures) == 1
        assert failures[0]["reference"] == "search-9"
        assert failures[0]["amount"] == 12


class TestTransactions:
    def test_newest_first_and_paginated(self, ledger, user):
        for amount in (1, 2, 3):
            ledger.grant(user.id, amount, f"Grant {amount}")
        page, total = ledger.transactions(user.id, page=1, limit=2)
        assert total == 4
        assert [t.amount for t in page] == [3, 2]
        page2, _ = ledger.transactions(user.id, page=2, limit=2)
        assert [t.amount for t in page2] == [1, 50]

    def test_limit_is_capped(self, ledger, user):
        for _ in range(3):
            ledger.grant(user.id, 1)
        page, total = ledger.transactions(user.id, limit=1000)
        assert len(page) == total == 4
