from __future__ import annotations

from datetime import date
from typing import List

import pytest

from models import ActivePurchase, Quote
from prices import PriceLookup
from store import CsvStore


class FakeSource:
    """In-memory price source that counts fetches."""

    def __init__(self, quotes: List[Quote]) -> None:
        self.quotes = quotes
        self.calls = 0

    def fetch(self) -> List[Quote]:
        self.calls += 1
        return list(self.quotes)


@pytest.fixture
def store(tmp_path) -> CsvStore:
    return CsvStore(str(tmp_path / "Active_Stock.csv"), str(tmp_path / "Closed_Positions.csv"))


@pytest.fixture
def quotes() -> List[Quote]:
    return [
        Quote(name="Reliance Industries", symbol="RELIANCE", price=120.0),
        Quote(name="Infosys", symbol="INFY", price=50.0),
        Quote(name="Tata Motors", symbol="TATAMOTORS", price=0.0),
    ]


@pytest.fixture
def source(quotes) -> FakeSource:
    return FakeSource(quotes)


@pytest.fixture
def lookup(source) -> PriceLookup:
    return PriceLookup(source, ttl_seconds=300)


def make_purchase(
    id: str = "1700000000000",
    name: str = "Reliance Industries",
    buy_date: date = date(2024, 1, 1),
    buy_price: float = 100.0,
    target_price: float = 0.0,
    quantity: int = 10,
) -> ActivePurchase:
    return ActivePurchase(
        id=id,
        name=name,
        buy_date=buy_date,
        buy_price=buy_price,
        target_price=target_price,
        quantity=quantity,
    )
