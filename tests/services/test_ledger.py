import sqlite3
from datetime import date
from decimal import Decimal
from unittest.mock import patch

import pytest

from errors import PersistenceError, SyncInProgressError
from models.transaction import INCOME, Transaction
from services.ledger import DELETE_FUTURE
from tools.periods import Period
from tests.helpers import make_transaction

USER = "user-1"


def rent(on=date(2024, 1, 5), **overrides) -> Transaction:
    fields = dict(
        description="Rent",
        amount=Decimal("1000"),
        type="expense",
        transaction_date=on,
        settled=True,
        category="Housing",
        recurring=True,
    )
    fields.update(overrides)
    return Transaction.create(**fields)


def purchase(on, amount="50", card_id=None, **overrides) -> Transaction:
    return Transaction.create(
        description=overrides.pop("description", "Purchase"),
        amount=Decimal(amount),
        type=overrides.pop("type", "expense"),
        transaction_date=on,
        card_id=card_id,
        **overrides,
    )


class TestLoad:
    """Tests for loading the ledger from storage."""

    def test_load_reads_user_entries(self, services):
        services.transactions.create(USER, purchase(date(2024, 1, 1)))
        services.transactions.create("someone-else", purchase(date(2024, 1, 1)))

        errors = services.ledger.load()

        assert errors == []
        assert len(services.ledger.transactions) == 1

    def test_load_skips_malformed_rows(self, services, test_db):
        services.transactions.create(USER, purchase(date(2024, 1, 1)))
        test_db.execute(
            """
            INSERT INTO transactions (id, user_id, description, amount, type, date)
            VALUES ('broken', ?, 'Broken', 'abc', 'expense', '2024-01-02')
            """,
            (USER,),
        )
        test_db.commit()

        errors = services.ledger.load()

        assert [e.record_id for e in errors] == ["broken"]
        assert len(services.ledger.transactions) == 1


class TestAddTransaction:
    """Tests for LedgerStore.add_transaction."""

    def test_add_swaps_temporary_id(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        assert not stored.is_temporary
        assert [t.id for t in ledger.transactions] == [stored.id]
        assert services.transactions.find(stored.id) == stored

    def test_recurring_entry_gets_series_id(self, ledger):
        stored = ledger.add_transaction(
            make_transaction(date(2024, 3, 1), recurring=True, recurring_group_id=None)
        )

        assert stored.recurring_group_id is not None

    def test_failure_rolls_back(self, ledger, services):
        with patch.object(
            services.transactions, "create", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            with pytest.raises(PersistenceError):
                ledger.add_transaction(purchase(date(2024, 3, 1)))

        assert ledger.transactions == []
        assert services.transactions.find_all(USER) == []

    def test_add_installments(self, ledger, services):
        stored = ledger.add_installments(
            "TV", Decimal("300"), "expense", date(2024, 1, 15), 3, category="Home"
        )

        assert len(stored) == 3
        assert all(not t.is_temporary for t in stored)
        assert len(services.transactions.find_all(USER)) == 3
        assert sorted(t.transaction_date for t in ledger.transactions) == [
            date(2024, 1, 15),
            date(2024, 2, 15),
            date(2024, 3, 15),
        ]

    def test_add_installments_failure_keeps_nothing(self, ledger, services):
        with patch.object(
            services.transactions, "bulk_create", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.add_installments("TV", Decimal("300"), "expense", date(2024, 1, 15), 3)

        assert ledger.transactions == []


class TestEditAndToggle:
    """Tests for editing and settling transactions."""

    def test_edit_changes_memory_and_storage(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        edited = ledger.edit_transaction(stored.id, amount=Decimal("75"), description="Shoes")

        assert edited.amount == Decimal("75")
        assert ledger.find(stored.id).description == "Shoes"
        assert services.transactions.find(stored.id).amount == Decimal("75")

    def test_edit_rejects_invalid_changes(self, ledger):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with pytest.raises(ValueError):
            ledger.edit_transaction(stored.id, amount=Decimal("-1"))
        with pytest.raises(ValueError):
            ledger.edit_transaction(stored.id, type="transfer")
        with pytest.raises(ValueError):
            ledger.edit_transaction(stored.id, id="other")
        with pytest.raises(ValueError):
            ledger.edit_transaction("missing", amount=Decimal("1"))

    def test_edit_failure_restores_old_values(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with patch.object(
            services.transactions, "update", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.edit_transaction(stored.id, amount=Decimal("75"))

        assert ledger.find(stored.id).amount == Decimal("50")

    def test_toggle_settled(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        toggled = ledger.toggle_settled(stored.id)

        assert toggled.settled is True
        assert ledger.find(stored.id).settled is True
        assert services.transactions.find(stored.id).settled is True

        ledger.toggle_settled(stored.id)
        assert services.transactions.find(stored.id).settled is False

    def test_toggle_failure_restores_flag(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with patch.object(
            services.transactions, "update_settled", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.toggle_settled(stored.id)

        assert ledger.find(stored.id).settled is False


class TestDeleteTransaction:
    """Tests for LedgerStore.delete_transaction."""

    def test_delete_single(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        deleted = ledger.delete_transaction(stored.id)

        assert [t.id for t in deleted] == [stored.id]
        assert ledger.transactions == []
        assert services.transactions.find(stored.id) is None

    def test_delete_future_removes_later_occurrences(self, ledger, services):
        january = ledger.add_transaction(rent(date(2024, 1, 5), recurring_group_id="rent"))
        february = ledger.add_transaction(rent(date(2024, 2, 5), recurring_group_id="rent"))
        ledger.add_transaction(rent(date(2024, 3, 5), recurring_group_id="rent"))
        other = ledger.add_transaction(purchase(date(2024, 3, 1)))

        deleted = ledger.delete_transaction(february.id, scope=DELETE_FUTURE)

        assert sorted(t.transaction_date for t in deleted) == [date(2024, 2, 5), date(2024, 3, 5)]
        assert {t.id for t in ledger.transactions} == {january.id, other.id}
        assert {t.id for t in services.transactions.find_all(USER)} == {january.id, other.id}

    def test_delete_future_without_series_deletes_one(self, ledger):
        one = ledger.add_transaction(purchase(date(2024, 3, 1)))
        two = ledger.add_transaction(purchase(date(2024, 3, 2)))

        ledger.delete_transaction(one.id, scope=DELETE_FUTURE)

        assert [t.id for t in ledger.transactions] == [two.id]

    def test_delete_rejects_unknown_scope(self, ledger):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with pytest.raises(ValueError):
            ledger.delete_transaction(stored.id, scope="everything")

    def test_delete_failure_restores_entry(self, ledger, services):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with patch.object(
            services.transactions, "delete", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.delete_transaction(stored.id)

        assert ledger.find(stored.id) is not None


class TestCards:
    """Tests for card management through the ledger."""

    def test_add_card(self, ledger, services):
        card = ledger.add_card("Visa", Decimal("5000"), 10, 20)

        assert not card.id.startswith("tmp-")
        assert ledger.cards == [card]
        assert services.cards.find(card.id) == card

    @pytest.mark.parametrize(
        "limit,closing,due",
        [(Decimal("0"), 10, 20), (Decimal("100"), 0, 20), (Decimal("100"), 10, 32)],
    )
    def test_add_card_validation(self, ledger, limit, closing, due):
        with pytest.raises(ValueError):
            ledger.add_card("Visa", limit, closing, due)

        assert ledger.cards == []

    def test_delete_card_keeps_its_transactions(self, ledger, services):
        card = ledger.add_card("Visa", Decimal("5000"), 10, 20)
        first = ledger.add_transaction(purchase(date(2024, 3, 1), card_id=card.id))
        second = ledger.add_transaction(purchase(date(2024, 3, 2), card_id=card.id))

        detached = ledger.delete_card(card.id)

        assert {t.id for t in detached} == {first.id, second.id}
        assert ledger.cards == []
        assert len(ledger.transactions) == 2
        assert all(t.card_id is None for t in ledger.transactions)
        assert all(t.card_id is None for t in services.transactions.find_all(USER))

    def test_delete_unknown_card(self, ledger):
        with pytest.raises(ValueError):
            ledger.delete_card("missing")

    def test_delete_card_failure_restores_references(self, ledger, services):
        card = ledger.add_card("Visa", Decimal("5000"), 10, 20)
        charge = ledger.add_transaction(purchase(date(2024, 3, 1), card_id=card.id))

        with patch.object(services.cards, "delete", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                ledger.delete_card(card.id)

        assert ledger.find_card(card.id) is not None
        assert ledger.find(charge.id).card_id == card.id


class TestCategories:
    """Tests for category rename and delete."""

    def test_rename_persists(self, ledger, services):
        ledger.add_transaction(purchase(date(2024, 3, 1), category="Food"))
        ledger.add_transaction(purchase(date(2024, 3, 2), category="Food"))
        ledger.add_transaction(purchase(date(2024, 3, 3), category="Fun"))

        assert ledger.rename_category("Food", "Groceries") == 2

        assert ledger.categories() == [("Groceries", 2), ("Fun", 1)]
        ledger.load()
        assert ledger.categories() == [("Groceries", 2), ("Fun", 1)]

    def test_delete_keeps_transactions(self, ledger):
        ledger.add_transaction(purchase(date(2024, 3, 1), category="Food"))

        assert ledger.delete_category("Food") == 1

        ledger.load()
        assert len(ledger.transactions) == 1
        assert ledger.categories() == []

    def test_rename_failure_restores_labels(self, ledger, services):
        ledger.add_transaction(purchase(date(2024, 3, 1), category="Food"))

        with patch.object(
            services.transactions, "rename_category", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.rename_category("Food", "Groceries")

        assert ledger.categories() == [("Food", 1)]

    def test_suggest_category(self, ledger):
        ledger.add_transaction(purchase(date(2024, 3, 1), description="Uber", category="Transport"))

        assert ledger.suggest_category("uber") == "Transport"
        assert ledger.suggest_category("Lyft") is None


class TestSyncRecurring:
    """Tests for LedgerStore.sync_recurring."""

    def test_rent_is_added_once(self, ledger, services):
        source = ledger.add_transaction(rent())

        added = ledger.sync_recurring(Period(2024, 2))

        assert len(added) == 1
        assert added[0].transaction_date == date(2024, 2, 5)
        assert added[0].recurring_group_id == source.recurring_group_id
        assert added[0].settled is False
        assert not added[0].is_temporary
        assert ledger.sync_recurring(Period(2024, 2)) == []
        assert len(services.transactions.find_all(USER)) == 2

    def test_sync_after_reload_adds_nothing(self, ledger):
        ledger.add_transaction(rent())
        ledger.sync_recurring(Period(2024, 2))

        ledger.load()

        assert ledger.sync_recurring(Period(2024, 2)) == []

    def test_legacy_source_gets_series_id_stored(self, ledger, services):
        legacy = services.transactions.create(
            USER, make_transaction(date(2024, 1, 5), description="Gym", recurring=True)
        )
        ledger.load()

        added = ledger.sync_recurring(Period(2024, 2))

        assert len(added) == 1
        group_id = added[0].recurring_group_id
        assert ledger.find(legacy.id).recurring_group_id == group_id
        assert services.transactions.find(legacy.id).recurring_group_id == group_id

    def test_unconfirmed_occurrences_are_dropped(self, ledger, services):
        source = ledger.add_transaction(rent())
        # another session already stored February's occurrence
        services.transactions.create(
            USER, rent(date(2024, 2, 5), recurring_group_id=source.recurring_group_id)
        )

        added = ledger.sync_recurring(Period(2024, 2))

        assert added == []
        assert [t.id for t in ledger.transactions] == [source.id]
        assert len(services.transactions.find_all(USER)) == 2

    def test_failure_keeps_nothing(self, ledger, services):
        ledger.add_transaction(rent())

        with patch.object(
            services.transactions, "bulk_create", side_effect=sqlite3.OperationalError("locked")
        ):
            with pytest.raises(PersistenceError):
                ledger.sync_recurring(Period(2024, 2))

        assert len(ledger.transactions) == 1
        # the guard is released after a failure
        assert len(ledger.sync_recurring(Period(2024, 2))) == 1

    def test_overlapping_sync_for_same_month_is_rejected(self, ledger, services):
        ledger.add_transaction(rent())
        original = services.transactions.bulk_create
        reentered = []

        def bulk_create(user_id, transactions):
            with pytest.raises(SyncInProgressError):
                ledger.sync_recurring(Period(2024, 2))
            # other months are not blocked
            reentered.append(ledger.sync_recurring(Period(2024, 1)))
            return original(user_id, transactions)

        with patch.object(services.transactions, "bulk_create", side_effect=bulk_create):
            added = ledger.sync_recurring(Period(2024, 2))

        assert len(added) == 1
        assert reentered == [[]]
        assert len(ledger.transactions) == 2

    def test_income_series(self, ledger):
        ledger.add_transaction(rent(description="Salary", type=INCOME, category="Work"))

        added = ledger.sync_recurring(Period(2024, 2))

        assert added[0].type == INCOME
        assert added[0].category == "Work"


class TestDerivedViews:
    """Tests for the period list and summary views."""

    def test_period_transactions_newest_first(self, ledger):
        early = ledger.add_transaction(purchase(date(2024, 3, 1)))
        late = ledger.add_transaction(purchase(date(2024, 3, 20)))
        ledger.add_transaction(purchase(date(2024, 4, 1)))

        assert [t.id for t in ledger.period_transactions(Period(2024, 3))] == [late.id, early.id]

    def test_card_charge_listed_in_invoice_month(self, ledger):
        card = ledger.add_card("Visa", Decimal("5000"), 10, 20)
        charge = ledger.add_transaction(purchase(date(2024, 3, 15), card_id=card.id))

        assert ledger.period_transactions(Period(2024, 3)) == []
        assert [t.id for t in ledger.period_transactions(Period(2024, 4))] == [charge.id]

    def test_summary(self, ledger):
        ledger.add_transaction(
            purchase(date(2024, 3, 1), amount="2000", type=INCOME, settled=True)
        )
        ledger.add_transaction(purchase(date(2024, 3, 10), amount="500"))

        summary, forecast = ledger.summary(Period(2024, 3))

        assert summary.balance == Decimal("2000")
        assert summary.pending_expense == Decimal("500")
        assert summary.forecast == Decimal("1500")
        assert len(forecast) == 31

    def test_recent_transactions(self, ledger):
        ledger.add_transaction(purchase(date(2024, 1, 1)))
        newest = ledger.add_transaction(purchase(date(2024, 5, 1)))

        assert [t.id for t in ledger.recent_transactions(1)] == [newest.id]

    def test_snapshot_is_detached(self, ledger):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        snapshot = ledger.snapshot()
        snapshot.transactions[0].description = "Changed"

        assert ledger.find(stored.id).description == "Purchase"


class TestEndingSeries:
    """Tests for deleting a recurring series from one occurrence on."""

    def test_deleted_occurrence_is_not_recreated(self, ledger):
        january = ledger.add_transaction(rent())
        february = ledger.sync_recurring(Period(2024, 2))[0]

        ledger.delete_transaction(february.id, scope=DELETE_FUTURE)
        ledger.load()

        assert ledger.sync_recurring(Period(2024, 2)) == []
        assert ledger.sync_recurring(Period(2024, 3)) == []
        assert [t.id for t in ledger.transactions] == [january.id]
        assert ledger.find(january.id).recurring is False

    def test_earlier_occurrences_stop_recurring_in_memory(self, ledger):
        january = ledger.add_transaction(rent(date(2024, 1, 5), recurring_group_id="rent"))
        february = ledger.add_transaction(rent(date(2024, 2, 5), recurring_group_id="rent"))
        other = ledger.add_transaction(rent(date(2024, 1, 9), description="Gym"))

        ledger.delete_transaction(february.id, scope=DELETE_FUTURE)

        assert ledger.find(january.id).recurring is False
        assert ledger.find(january.id).recurring_group_id == "rent"
        assert ledger.find(other.id).recurring is True

    def test_failure_restores_series(self, ledger, services):
        january = ledger.add_transaction(rent(date(2024, 1, 5), recurring_group_id="rent"))
        february = ledger.add_transaction(rent(date(2024, 2, 5), recurring_group_id="rent"))

        with patch.object(
            services.transactions,
            "delete_series_from",
            side_effect=sqlite3.OperationalError("locked"),
        ):
            with pytest.raises(PersistenceError):
                ledger.delete_transaction(february.id, scope=DELETE_FUTURE)

        assert ledger.find(january.id).recurring is True
        assert ledger.find(february.id) is not None
        assert services.transactions.find(january.id).recurring is True


class TestNonFiniteAmounts:
    """Tests that amounts which could not be loaded back are refused."""

    @pytest.mark.parametrize("value", ["Infinity", "-Infinity", "NaN", "sNaN"])
    def test_edit_rejects_non_finite_amount(self, ledger, services, value):
        stored = ledger.add_transaction(purchase(date(2024, 3, 1)))

        with pytest.raises(ValueError):
            ledger.edit_transaction(stored.id, amount=Decimal(value))

        assert ledger.find(stored.id).amount == Decimal("50")
        assert services.transactions.find(stored.id).amount == Decimal("50")

    @pytest.mark.parametrize("value", ["Infinity", "NaN"])
    def test_add_card_rejects_non_finite_limit(self, ledger, value):
        with pytest.raises(ValueError):
            ledger.add_card("Visa", Decimal(value), 10, 20)

        assert ledger.cards == []

    @pytest.mark.parametrize("value", ["Infinity", "NaN"])
    def test_add_installments_rejects_non_finite_amount(self, ledger, value):
        with pytest.raises(ValueError):
            ledger.add_installments("TV", Decimal(value), "expense", date(2024, 1, 15), 3)

        assert ledger.transactions == []


class TestPartialInstallments:
    """Tests for an installment batch that storage only partly confirms."""

    def test_confirmed_installments_are_removed_again(self, ledger, services):
        original = services.transactions.bulk_create

        def confirm_first_only(user_id, transactions):
            return original(user_id, transactions[:1])

        with patch.object(services.transactions, "bulk_create", side_effect=confirm_first_only):
            with pytest.raises(PersistenceError):
                ledger.add_installments("TV", Decimal("300"), "expense", date(2024, 1, 15), 3)

        assert ledger.transactions == []
        assert services.transactions.find_all(USER) == []


class TestCardInvoice:
    """Tests for LedgerStore.card_invoice."""

    def test_lists_charges_billed_in_month(self, ledger):
        visa = ledger.add_card("Visa", Decimal("5000"), 10, 20)
        amex = ledger.add_card("Amex", Decimal("5000"), 10, 20)
        early = ledger.add_transaction(purchase(date(2024, 3, 2), card_id=visa.id))
        late = ledger.add_transaction(purchase(date(2024, 3, 9), card_id=visa.id))
        ledger.add_transaction(purchase(date(2024, 3, 12), card_id=visa.id))  # April invoice
        ledger.add_transaction(purchase(date(2024, 3, 3), card_id=amex.id))
        ledger.add_transaction(purchase(date(2024, 3, 4)))

        invoice = ledger.card_invoice(visa.id, Period(2024, 3))

        assert [t.id for t in invoice] == [late.id, early.id]

    def test_unknown_card(self, ledger):
        with pytest.raises(ValueError):
            ledger.card_invoice("missing", Period(2024, 3))

    def test_available_limit_follows_open_invoice(self, ledger):
        card = ledger.add_card("Visa", Decimal("1000"), 10, 20)
        ledger.add_transaction(purchase(date(2024, 3, 2), amount="250", card_id=card.id))
        ledger.add_transaction(
            purchase(date(2024, 3, 3), amount="100", card_id=card.id, settled=True)
        )

        summary, _ = ledger.summary(Period(2024, 3))
        invoice = summary.card_totals[card.id]

        assert invoice == Decimal("250")
        assert card.available_limit(invoice) == Decimal("750")
        assert card.percent_used(invoice) == Decimal("25")
