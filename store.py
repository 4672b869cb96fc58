from __future__ import annotations

import csv
import logging
import math
import os
import tempfile
import threading
import time
from datetime import date
from typing import Callable, List, Optional, TypeVar

from models import ActivePurchase, ClosedPosition

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVE_STOCK_HEADERS = ["id", "name", "buyDate", "buyPrice", "targetPrice", "quantity"]
CLOSED_POSITION_HEADERS = [
    "id", "name", "buyDate", "buyPrice", "quantity", "buyValue",
    "sellDate", "sellPrice", "sellValue", "gain", "daysHeld", "percentGain", "annualizedGainPercent",
]


class CsvStore:
    """Active purchases and closed positions kept in two CSV files.

    Every public method holds the store lock for its whole read-modify-write,
    so a sale (append closed + remove active) commits at most once per id.
    """

    def __init__(self, active_path: str, closed_path: str) -> None:
        self.active_path = active_path
        self.closed_path = closed_path
        self._lock = threading.RLock()
        self._last_id = 0

    @classmethod
    def from_config(cls) -> "CsvStore":
        from config import ACTIVE_STOCK_CSV, CLOSED_POSITIONS_CSV

        return cls(ACTIVE_STOCK_CSV, CLOSED_POSITIONS_CSV)

    # ── Active purchases ──────────────────────────────────────────────

    def list_purchases(self) -> List[ActivePurchase]:
        with self._lock:
            return _read_rows(self.active_path, ACTIVE_STOCK_HEADERS, _row_to_purchase)

    def get_purchase(self, purchase_id: str) -> Optional[ActivePurchase]:
        return next((p for p in self.list_purchases() if p.id == purchase_id), None)

    def new_purchase_id(self) -> str:
        with self._lock:
            taken = {p.id for p in self.list_purchases()}
            candidate = max(int(time.time() * 1000), self._last_id + 1)
            while str(candidate) in taken:
                candidate += 1
            self._last_id = candidate
            return str(candidate)

    def append_purchase(self, purchase: ActivePurchase) -> None:
        with self._lock:
            purchases = self.list_purchases()
            if any(p.id == purchase.id for p in purchases):
                raise ValueError(f"Duplicate purchase id {purchase.id}")
            purchases.append(purchase)
            _write_rows(self.active_path, ACTIVE_STOCK_HEADERS, purchases, _purchase_to_row)

    def remove_purchase(self, purchase_id: str) -> bool:
        with self._lock:
            purchases = self.list_purchases()
            kept = [p for p in purchases if p.id != purchase_id]
            if len(kept) == len(purchases):
                return False
            _write_rows(self.active_path, ACTIVE_STOCK_HEADERS, kept, _purchase_to_row)
            return True

    # ── Closed positions ──────────────────────────────────────────────

    def list_closed(self) -> List[ClosedPosition]:
        with self._lock:
            return _read_rows(self.closed_path, CLOSED_POSITION_HEADERS, _row_to_closed)

    def get_closed(self, position_id: str) -> Optional[ClosedPosition]:
        return next((c for c in self.list_closed() if c.id == position_id), None)

    def append_closed(self, position: ClosedPosition) -> None:
        with self._lock:
            closed = self.list_closed()
            closed.append(position)
            _write_rows(self.closed_path, CLOSED_POSITION_HEADERS, closed, _closed_to_row)

    def remove_closed(self, position_id: str) -> bool:
        with self._lock:
            closed = self.list_closed()
            kept = [c for c in closed if c.id != position_id]
            if len(kept) == len(closed):
                return False
            _write_rows(self.closed_path, CLOSED_POSITION_HEADERS, kept, _closed_to_row)
            return True

    # ── Sale ──────────────────────────────────────────────────────────

    def close_purchase(self, position: ClosedPosition) -> bool:
        """Move the active purchase ``position.id`` into the closed ledger.

        Returns False without writing anything when the purchase is gone,
        e.g. because it was already sold.
        """
        with self._lock:
            if self.get_purchase(position.id) is None:
                return False
            previous = self.list_closed()
            self.append_closed(position)
            try:
                self.remove_purchase(position.id)
            except BaseException:
                # Put the closed ledger back so the id lives in one file only
                _write_rows(self.closed_path, CLOSED_POSITION_HEADERS, previous, _closed_to_row)
                raise
            return True


# ── CSV helpers ───────────────────────────────────────────────────────

def _read_rows(path: str, headers: List[str], parse: Callable[[List[str]], Optional[T]]) -> List[T]:
    if not os.path.exists(path):
        _write_rows(path, headers, [], lambda item: [])
        return []

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))

    if not rows or [h.strip() for h in rows[0]] != headers:
        logger.warning("Missing or unexpected header in %s, resetting file", path)
        _write_rows(path, headers, [], lambda item: [])
        return []

    items: List[T] = []
    for line_no, row in enumerate(rows[1:], start=2):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < len(headers):
            logger.warning("Skipping short row %d in %s", line_no, path)
            continue
        try:
            item = parse(row)
        except ValueError:
            logger.warning("Skipping unreadable row %d in %s", line_no, path, exc_info=True)
            continue
        if item is not None:
            items.append(item)
    return items


def _write_rows(path: str, headers: List[str], items: list, to_row: Callable[[T], List[str]]) -> None:
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".tmp-", suffix=".csv")
    try:
        with os.fdopen(fd, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, lineterminator="\n")
            writer.writerow(headers)
            writer.writerows(to_row(item) for item in items)
        os.replace(tmp_path, path)
    except BaseException:
        os.unlink(tmp_path)
        raise


def _row_to_purchase(row: List[str]) -> ActivePurchase:
    id_, name, buy_date, buy_price, target_price, quantity = row[:6]
    return ActivePurchase(
        id=id_,
        name=name,
        buy_date=_parse_date(buy_date),
        buy_price=_parse_float(buy_price),
        target_price=_parse_float(target_price),
        quantity=_parse_int(quantity),
    )


def _purchase_to_row(p: ActivePurchase) -> List[str]:
    return [
        p.id, p.name, p.buy_date.isoformat(), _format_number(p.buy_price),
        _format_number(p.target_price or 0), str(p.quantity),
    ]


def _row_to_closed(row: List[str]) -> ClosedPosition:
    (id_, name, buy_date, buy_price, quantity, buy_value, sell_date, sell_price,
     sell_value, gain, days_held, percent_gain, annualized) = row[:13]
    return ClosedPosition(
        id=id_,
        name=name,
        buy_date=_parse_date(buy_date),
        buy_price=_parse_float(buy_price),
        quantity=_parse_int(quantity),
        buy_value=_parse_float(buy_value),
        sell_date=_parse_date(sell_date),
        sell_price=_parse_float(sell_price),
        sell_value=_parse_float(sell_value),
        gain=_parse_float(gain),
        days_held=_parse_int(days_held),
        percent_gain=_parse_float(percent_gain),
        annualized_gain_percent=_parse_float(annualized) if annualized.strip() else None,
    )


def _closed_to_row(c: ClosedPosition) -> List[str]:
    return [
        c.id, c.name, c.buy_date.isoformat(), _format_number(c.buy_price), str(c.quantity),
        _format_number(c.buy_value), c.sell_date.isoformat(), _format_number(c.sell_price),
        _format_number(c.sell_value), _format_number(c.gain), str(c.days_held),
        _format_number(c.percent_gain),
        "" if c.annualized_gain_percent is None else _format_number(c.annualized_gain_percent),
    ]


def _parse_date(value: str) -> date:
    # Accepts both plain dates and full ISO timestamps
    return date.fromisoformat(value.strip()[:10])


def _parse_float(value: str) -> float:
    try:
        result = float(value.strip())
    except ValueError:
        return 0.0
    return 0.0 if math.isnan(result) else result


def _parse_int(value: str) -> int:
    try:
        return int(value.strip())
    except ValueError:
        result = _parse_float(value)
        return int(result) if math.isfinite(result) else 0


def _format_number(value: float) -> str:
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))
