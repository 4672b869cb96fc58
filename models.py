from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class ActivePurchase:
    id: str
    name: str
    buy_date: date
    buy_price: float
    target_price: float      # 0 means no target set
    quantity: int


@dataclass(frozen=True)
class PortfolioItem(ActivePurchase):
    current_price: float = 0.0
    current_value: float = 0.0
    gain_loss: float = 0.0
    gain_loss_percent: float = 0.0
    days_since_buy: int = 0
    remaining_gain: Optional[float] = None
    portfolio_weightage: Optional[float] = None


@dataclass(frozen=True)
class ClosedPosition:
    id: str
    name: str
    buy_date: date
    buy_price: float
    quantity: int
    buy_value: float
    sell_date: date
    sell_price: float
    sell_value: float
    gain: float
    days_held: int
    percent_gain: float
    annualized_gain_percent: Optional[float] = None


@dataclass
class PortfolioTotals:
    total_value: float = 0.0
    total_investment: float = 0.0
    overall_gain_loss: float = 0.0
    overall_gain_loss_percent: float = 0.0


@dataclass
class PositionSummary:
    total_buy_value: float = 0.0
    total_sell_value: float = 0.0
    total_profit: float = 0.0
    overall_pnl_percent: Optional[float] = None
    cagr: Optional[float] = None


@dataclass
class Quote:
    name: str
    symbol: str
    price: float


@dataclass
class StockSuggestion:
    name: str
    symbol: str
