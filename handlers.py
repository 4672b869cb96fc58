"""Request handlers: validate input, run the metrics, commit to the store.

Mutating handlers return an :class:`ActionResult` instead of raising, so a
front end can show ``message`` plus per-field errors.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from metrics import aggregate_positions, compute_portfolio_view, settle_sale
from models import ActivePurchase, ClosedPosition, PortfolioItem, PositionSummary, StockSuggestion
from prices import PriceLookup
from store import CsvStore

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    ok: bool
    message: str
    data: Any = None
    field_errors: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def success(cls, message: str, data: Any = None) -> "ActionResult":
        return cls(ok=True, message=message, data=data)

    @classmethod
    def failure(cls, message: str, field_errors: Optional[Dict[str, List[str]]] = None) -> "ActionResult":
        return cls(ok=False, message=message, field_errors=field_errors or {})


class PurchaseForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    buy_date: date
    buy_price: float = Field(gt=0)
    target_price: Optional[float] = Field(default=None, gt=0)
    quantity: int = Field(gt=0)

    @field_validator("buy_date")
    @classmethod
    def _not_in_future(cls, v: date, info: ValidationInfo) -> date:
        today = (info.context or {}).get("today") or date.today()
        if v > today:
            raise ValueError("Buy date cannot be in the future")
        return v


class SaleForm(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    stock_id: str = Field(min_length=1)
    sell_date: date
    sell_price: float = Field(gt=0)


# ── Mutations ─────────────────────────────────────────────────────────

def add_purchase(
    store: CsvStore,
    lookup: PriceLookup,
    form: Mapping[str, Any],
    today: Optional[date] = None,
) -> ActionResult:
    try:
        data = PurchaseForm.model_validate(_clean(form), context={"today": today})
    except ValidationError as exc:
        return ActionResult.failure(
            "Failed to add stock. Please check the form for errors.", _field_errors(exc)
        )

    known = lookup.known_names()
    if not known:
        return ActionResult.failure(
            "Failed to validate stock name. Stock list could not be loaded.",
            {"name": ["Could not load the stock list. Check the price source and try again later."]},
        )
    if data.name not in known:
        return ActionResult.failure(
            "Invalid stock name. It does not match any known stock.",
            {"name": ["Please select a valid stock from the suggestions list."]},
        )

    purchase = ActivePurchase(
        id=store.new_purchase_id(),
        name=data.name,
        buy_date=data.buy_date,
        buy_price=data.buy_price,
        target_price=data.target_price or 0.0,
        quantity=data.quantity,
    )
    store.append_purchase(purchase)
    logger.info("Added purchase %s: %d x %s @ %.2f", purchase.id, purchase.quantity, purchase.name, purchase.buy_price)
    return ActionResult.success(f"Added {purchase.name} to portfolio.", purchase)


def record_sale(store: CsvStore, form: Mapping[str, Any]) -> ActionResult:
    try:
        data = SaleForm.model_validate(_clean(form))
    except ValidationError as exc:
        return ActionResult.failure(
            "Failed to record sale. Please check the form details.", _field_errors(exc)
        )

    purchase = store.get_purchase(data.stock_id)
    if purchase is None:
        return ActionResult.failure("Stock not found in portfolio.")

    if data.sell_date < purchase.buy_date:
        logger.warning(
            "Sale of %s dated %s is before its buy date %s",
            purchase.id, data.sell_date, purchase.buy_date,
        )

    closed = settle_sale(purchase, data.sell_date, data.sell_price)
    if not store.close_purchase(closed):
        # Sold by another request between the read and the commit
        return ActionResult.failure("Stock not found in portfolio.")

    logger.info("Sold %s (%s), gain %.2f", purchase.id, purchase.name, closed.gain)
    return ActionResult.success(f"Sold {purchase.name}. Position moved to closed.", closed)


def delete_closed_position(store: CsvStore, position_id: str) -> ActionResult:
    if not position_id:
        return ActionResult.failure("Invalid position ID.", {"position_id": ["Position ID is required"]})

    position = store.get_closed(position_id)
    if position is None or not store.remove_closed(position_id):
        return ActionResult.failure("Closed position not found.")

    logger.info("Deleted closed position %s (%s)", position.id, position.name)
    return ActionResult.success(f"Successfully deleted closed position for {position.name}.", position)


# ── Queries ───────────────────────────────────────────────────────────

def get_portfolio(store: CsvStore, lookup: PriceLookup, today: Optional[date] = None) -> List[PortfolioItem]:
    purchases = store.list_purchases()
    if not purchases:
        return []
    prices = lookup.prices()
    if not prices:
        logger.warning("No prices available, current values will be 0")
    return compute_portfolio_view(purchases, prices, today)


def get_closed_positions(store: CsvStore) -> List[ClosedPosition]:
    return sorted(store.list_closed(), key=lambda c: c.sell_date, reverse=True)


def get_summary(store: CsvStore, start: datetime, now: Optional[datetime] = None) -> PositionSummary:
    return aggregate_positions(store.list_closed(), start, now)


def get_stock_suggestions(lookup: PriceLookup, query: str) -> List[StockSuggestion]:
    return lookup.suggest(query.strip() if query else "")


# ── Helpers ───────────────────────────────────────────────────────────

def _clean(form: Mapping[str, Any]) -> Dict[str, Any]:
    # Blank form fields count as missing
    return {k: v for k, v in form.items() if v is not None and v != ""}


def _field_errors(exc: ValidationError) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    for err in exc.errors():
        key = str(err["loc"][0]) if err["loc"] else "_form"
        errors.setdefault(key, []).append(err["msg"])
    return errors
