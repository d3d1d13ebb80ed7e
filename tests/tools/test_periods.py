"""Tests for periods, invoice period resolution and period filtering."""

import logging
from datetime import date
from unittest.mock import patch

import pytest

from tools import periods
from tools.periods import Period, filter_for_period, resolve_invoice_period, sort_by_date_desc
from tests.helpers import make_card, make_transaction


class TestPeriod:
    """Tests for the Period value object."""

    def test_next_rolls_over_year(self):
        assert Period(2024, 12).next() == Period(2025, 1)
        assert Period(2024, 3).next() == Period(2024, 4)

    def test_previous_rolls_back_year(self):
        assert Period(2024, 1).previous() == Period(2023, 12)
        assert Period(2024, 3).previous() == Period(2024, 2)

    def test_last_day_handles_leap_years(self):
        assert Period(2024, 2).last_day == 29
        assert Period(2023, 2).last_day == 28
        assert Period(2024, 4).last_day == 30

    def test_clamp_pulls_back_to_last_day(self):
        assert Period(2024, 4).clamp(31) == date(2024, 4, 30)
        assert Period(2023, 2).clamp(30) == date(2023, 2, 28)
        assert Period(2024, 4).clamp(15) == date(2024, 4, 15)

    def test_contains(self):
        assert Period(2024, 3).contains(date(2024, 3, 31))
        assert not Period(2024, 3).contains(date(2023, 3, 15))

    def test_parse_and_str(self):
        period = Period.parse("2024-02")

        assert period == Period(2024, 2)
        assert str(period) == "2024-02"

    @pytest.mark.parametrize("value", ["2024", "2024-13", "feb-2024", ""])
    def test_parse_rejects_invalid(self, value):
        with pytest.raises(ValueError):
            Period.parse(value)

    def test_periods_are_ordered(self):
        assert Period(2023, 12) < Period(2024, 1) < Period(2024, 2)


class TestResolveInvoicePeriod:
    """Tests for resolve_invoice_period."""

    def test_after_closing_day_goes_to_next_month(self):
        assert resolve_invoice_period(date(2024, 3, 15), 10) == Period(2024, 4)

    def test_before_closing_day_stays_in_month(self):
        assert resolve_invoice_period(date(2024, 3, 5), 10) == Period(2024, 3)

    def test_on_closing_day_stays_in_month(self):
        assert resolve_invoice_period(date(2024, 3, 10), 10) == Period(2024, 3)

    def test_december_rolls_into_january(self):
        assert resolve_invoice_period(date(2024, 12, 20), 10) == Period(2025, 1)

    def test_out_of_range_closing_day_is_accepted(self):
        # No validation: 0 sends every purchase to the next month, 40 keeps all
        assert resolve_invoice_period(date(2024, 3, 1), 0) == Period(2024, 4)
        assert resolve_invoice_period(date(2024, 3, 31), 40) == Period(2024, 3)


class TestFilterForPeriod:
    """Tests for filter_for_period."""

    def test_cash_transactions_use_their_own_month(self):
        march = make_transaction(date(2024, 3, 31), description="March")
        april = make_transaction(date(2024, 4, 1), description="April")

        result = filter_for_period([march, april], [], Period(2024, 3))

        assert result == [march]

    def test_card_transaction_after_closing_moves_to_next_invoice(self):
        card = make_card(closing_day=10)
        purchase = make_transaction(date(2024, 3, 12), card_id=card.id)

        assert filter_for_period([purchase], [card], Period(2024, 3)) == []
        assert filter_for_period([purchase], [card], Period(2024, 4)) == [purchase]

    def test_card_transaction_before_closing_stays(self):
        card = make_card(closing_day=10)
        purchase = make_transaction(date(2024, 3, 5), card_id=card.id)

        assert filter_for_period([purchase], [card], Period(2024, 3)) == [purchase]

    def test_cash_transactions_never_resolve_invoices(self):
        cash = make_transaction(date(2024, 3, 15))

        with patch.object(periods, "resolve_invoice_period") as resolver:
            result = filter_for_period([cash], [make_card()], Period(2024, 3))

        resolver.assert_not_called()
        assert result == [cash]

    def test_dangling_card_reference_is_excluded_and_logged(self, caplog):
        orphan = make_transaction(date(2024, 3, 5), card_id="deleted-card")
        cash = make_transaction(date(2024, 3, 5))

        with caplog.at_level(logging.WARNING, logger="fincontrol"):
            result = filter_for_period([orphan, cash], [make_card()], Period(2024, 3))

        assert result == [cash]
        assert "deleted-card" in caplog.text

    def test_keeps_ledger_order(self):
        first = make_transaction(date(2024, 3, 20))
        second = make_transaction(date(2024, 3, 1))

        assert filter_for_period([first, second], [], Period(2024, 3)) == [first, second]


def test_sort_by_date_desc():
    old = make_transaction(date(2024, 1, 1))
    new = make_transaction(date(2024, 3, 1))
    mid = make_transaction(date(2024, 2, 1))

    assert sort_by_date_desc([old, new, mid]) == [new, mid, old]
