from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

# Storage
DATA_DIR = os.getenv("DATA_DIR", "Data")
ACTIVE_STOCK_CSV = os.path.join(DATA_DIR, "Active_Stock.csv")
CLOSED_POSITIONS_CSV = os.path.join(DATA_DIR, "Closed_Positions.csv")

# Prices
PRICE_SOURCE = os.getenv("PRICE_SOURCE", "sheet")  # sheet, yfinance, mock
PRICE_SHEET_URL = os.getenv("PRICE_SHEET_URL", "")
PRICE_CACHE_SECONDS = int(os.getenv("PRICE_CACHE_SECONDS", "300"))
PRICE_FETCH_TIMEOUT = float(os.getenv("PRICE_FETCH_TIMEOUT", "10"))
WATCHLIST = [s.strip() for s in os.getenv("WATCHLIST", "").split(",") if s.strip()]

# Mock random walk
MOCK_PRICE_SEED = int(os.getenv("MOCK_PRICE_SEED", "42"))
MOCK_BASE_PRICE = float(os.getenv("MOCK_BASE_PRICE", "100"))
MOCK_VOLATILITY = float(os.getenv("MOCK_VOLATILITY", "0.02"))

# Reporting
CAGR_START_DATE = os.getenv("CAGR_START_DATE", "2020-01-01")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
