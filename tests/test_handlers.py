"""Tests for request handlers: validation, sale flow and queries."""

from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest

from conftest import FakeSource, make_purchase
from handlers import (
    ActionResult,
    add_purchase,
    delete_closed_position,
    get_closed_positions,
    get_portfolio,
    get_stock_suggestions,
    get_summary,
    record_sale,
)
from metrics import settle_sale
from prices import PriceLookup

TODAY = date(2024, 6, 1)


def _purchase_form(**overrides):
    form = {
        "name": "Reliance Industries",
        "buy_date": "2024-05-01",
        "buy_price": "100",
        "target_price": "",
        "quantity": "10",
    }
    form.update(overrides)
    return form


# ══════════════════════════════════════════════════════════════════════
# 1.  Add purchase
# ══════════════════════════════════════════════════════════════════════


class TestAddPurchase:

    def test_adds_purchase(self, store, lookup):
        result = add_purchase(store, lookup, _purchase_form(), today=TODAY)

        assert isinstance(result, ActionResult)
        assert result.ok
        assert result.message == "Added Reliance Industries to portfolio."
        [p] = store.list_purchases()
        assert p == result.data
        assert p.buy_date == date(2024, 5, 1)
        assert p.buy_price == 100.0
        assert p.target_price == 0.0
        assert p.quantity == 10

    def test_target_price_kept(self, store, lookup):
        result = add_purchase(store, lookup, _purchase_form(target_price="150.5"), today=TODAY)
        assert result.ok
        assert store.list_purchases()[0].target_price == 150.5

    def test_ids_unique(self, store, lookup):
        for _ in range(5):
            assert add_purchase(store, lookup, _purchase_form(), today=TODAY).ok
        ids = [p.id for p in store.list_purchases()]
        assert len(set(ids)) == 5

    @pytest.mark.parametrize(
        "overrides, field",
        [
            ({"name": ""}, "name"),
            ({"name": "   "}, "name"),
            ({"buy_date": ""}, "buy_date"),
            ({"buy_date": "yesterday"}, "buy_date"),
            ({"buy_date": "2024-06-02"}, "buy_date"),
            ({"buy_price": "0"}, "buy_price"),
            ({"buy_price": "-5"}, "buy_price"),
            ({"target_price": "-1"}, "target_price"),
            ({"quantity": "0"}, "quantity"),
            ({"quantity": "2.5"}, "quantity"),
            ({"quantity": "ten"}, "quantity"),
        ],
    )
    def test_validation_errors(self, store, lookup, overrides, field):
        result = add_purchase(store, lookup, _purchase_form(**overrides), today=TODAY)
        assert not result.ok
        assert field in result.field_errors
        assert result.field_errors[field]
        assert result.message == "Failed to add stock. Please check the form for errors."
        assert store.list_purchases() == []

    def test_buy_date_today_allowed(self, store, lookup):
        assert add_purchase(store, lookup, _purchase_form(buy_date="2024-06-01"), today=TODAY).ok

    def test_unknown_name_rejected(self, store, lookup):
        result = add_purchase(store, lookup, _purchase_form(name="Acme Corp"), today=TODAY)
        assert not result.ok
        assert "name" in result.field_errors
        assert store.list_purchases() == []

    def test_unavailable_stock_list_rejected(self, store):
        result = add_purchase(store, PriceLookup(FakeSource([])), _purchase_form(), today=TODAY)
        assert not result.ok
        assert "name" in result.field_errors
        assert "could not be loaded" in result.message


# ══════════════════════════════════════════════════════════════════════
# 2.  Sale and delete
# ══════════════════════════════════════════════════════════════════════


class TestRecordSale:

    def test_sale_moves_position(self, store):
        p = make_purchase(buy_price=100.0, quantity=10, buy_date=date(2024, 1, 1))
        store.append_purchase(p)

        result = record_sale(store, {"stock_id": p.id, "sell_date": "2024-03-14", "sell_price": "110"})

        assert result.ok
        assert result.message == "Sold Reliance Industries. Position moved to closed."
        assert store.list_purchases() == []
        [closed] = store.list_closed()
        assert closed == result.data
        assert closed.gain == pytest.approx(100.0)
        assert closed.days_held == 73
        assert closed.annualized_gain_percent == pytest.approx(50.0)

    def test_only_target_removed(self, store):
        a, b = make_purchase(id="1"), make_purchase(id="2")
        store.append_purchase(a)
        store.append_purchase(b)
        assert record_sale(store, {"stock_id": "1", "sell_date": "2024-02-01", "sell_price": 1}).ok
        assert store.list_purchases() == [b]

    def test_unknown_stock(self, store):
        result = record_sale(store, {"stock_id": "missing", "sell_date": "2024-02-01", "sell_price": "10"})
        assert not result.ok
        assert result.message == "Stock not found in portfolio."

    def test_second_sale_of_same_id_fails(self, store):
        p = make_purchase()
        store.append_purchase(p)
        form = {"stock_id": p.id, "sell_date": "2024-02-01", "sell_price": "120"}
        assert record_sale(store, form).ok
        assert not record_sale(store, form).ok
        assert len(store.list_closed()) == 1

    @pytest.mark.parametrize(
        "form, field",
        [
            ({"stock_id": "", "sell_date": "2024-02-01", "sell_price": "10"}, "stock_id"),
            ({"stock_id": "1", "sell_date": "", "sell_price": "10"}, "sell_date"),
            ({"stock_id": "1", "sell_date": "2024-02-01", "sell_price": "0"}, "sell_price"),
            ({"stock_id": "1", "sell_date": "2024-02-01", "sell_price": "-3"}, "sell_price"),
        ],
    )
    def test_validation_errors(self, store, form, field):
        store.append_purchase(make_purchase(id="1"))
        result = record_sale(store, form)
        assert not result.ok
        assert field in result.field_errors
        assert result.message == "Failed to record sale. Please check the form details."
        assert len(store.list_purchases()) == 1

    def test_backdated_sale_is_accepted(self, store):
        p = make_purchase(buy_date=date(2024, 1, 10))
        store.append_purchase(p)
        result = record_sale(store, {"stock_id": p.id, "sell_date": "2024-01-05", "sell_price": "110"})
        assert result.ok
        assert result.data.days_held == -5
        assert result.data.annualized_gain_percent is None


class TestDeleteClosedPosition:

    def test_delete(self, store):
        c = settle_sale(make_purchase(), date(2024, 2, 1), 120.0)
        store.append_closed(c)
        result = delete_closed_position(store, c.id)
        assert result.ok
        assert result.message.startswith("Successfully deleted")
        assert store.list_closed() == []

    def test_delete_missing(self, store):
        result = delete_closed_position(store, "nope")
        assert not result.ok
        assert result.message == "Closed position not found."

    def test_delete_requires_id(self, store):
        result = delete_closed_position(store, "")
        assert not result.ok
        assert "position_id" in result.field_errors


# ══════════════════════════════════════════════════════════════════════
# 3.  Queries
# ══════════════════════════════════════════════════════════════════════


class TestQueries:

    def test_portfolio_uses_lookup_prices(self, store, lookup):
        store.append_purchase(make_purchase(id="1", name="Reliance Industries", quantity=10))
        store.append_purchase(make_purchase(id="2", name="Infosys", quantity=20))
        items = get_portfolio(store, lookup, today=TODAY)

        assert [i.current_price for i in items] == [120.0, 50.0]
        assert items[0].portfolio_weightage == pytest.approx(1200 / 2200 * 100)
        assert sum(i.portfolio_weightage for i in items) == pytest.approx(100.0)

    def test_empty_portfolio_skips_price_fetch(self, store, source, lookup):
        assert get_portfolio(store, lookup) == []
        assert source.calls == 0

    def test_portfolio_without_prices(self, store):
        store.append_purchase(make_purchase())
        [item] = get_portfolio(store, PriceLookup(FakeSource([])), today=TODAY)
        assert item.current_value == 0.0
        assert item.portfolio_weightage == 0.0

    def test_closed_positions_newest_first(self, store):
        for i, sold in enumerate([date(2024, 2, 1), date(2024, 4, 1), date(2024, 3, 1)]):
            store.append_closed(settle_sale(make_purchase(id=str(i)), sold, 110.0))
        assert [c.sell_date for c in get_closed_positions(store)] == [
            date(2024, 4, 1), date(2024, 3, 1), date(2024, 2, 1),
        ]

    def test_summary(self, store):
        store.append_closed(settle_sale(make_purchase(buy_price=100.0, quantity=10), date(2024, 2, 1), 150.0))
        start = datetime(2023, 1, 1)
        s = get_summary(store, start, now=start + timedelta(days=365.25))
        assert s.total_profit == pytest.approx(500.0)
        assert s.cagr == pytest.approx(50.0)

    def test_summary_empty(self, store):
        s = get_summary(store, datetime(2023, 1, 1))
        assert s.total_profit == 0
        assert s.overall_pnl_percent is None
        assert s.cagr is None

    def test_suggestions(self, lookup):
        assert [s.name for s in get_stock_suggestions(lookup, " infos ")] == ["Infosys"]
        assert get_stock_suggestions(lookup, "") == []
