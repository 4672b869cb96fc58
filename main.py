from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime
from typing import Optional


def _money(value: float) -> str:
    from config import CURRENCY_SYMBOL

    return f"{CURRENCY_SYMBOL}{value:,.2f}"


def _pct(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:+.2f}%"


def _report(result) -> None:
    print(result.message)
    for name, errors in result.field_errors.items():
        for err in errors:
            print(f"  {name}: {err}")
    if not result.ok:
        sys.exit(1)


def cmd_add(args: argparse.Namespace) -> None:
    from handlers import add_purchase
    from prices import build_price_lookup
    from store import CsvStore

    form = {
        "name": args.name,
        "buy_date": args.date or date.today().isoformat(),
        "buy_price": args.buy_price,
        "target_price": args.target,
        "quantity": args.quantity,
    }
    _report(add_purchase(CsvStore.from_config(), build_price_lookup(), form))


def cmd_sell(args: argparse.Namespace) -> None:
    from handlers import record_sale
    from store import CsvStore

    form = {
        "stock_id": args.id,
        "sell_date": args.date or date.today().isoformat(),
        "sell_price": args.sell_price,
    }
    _report(record_sale(CsvStore.from_config(), form))


def cmd_delete(args: argparse.Namespace) -> None:
    from handlers import delete_closed_position
    from store import CsvStore

    _report(delete_closed_position(CsvStore.from_config(), args.id))


def cmd_portfolio(args: argparse.Namespace) -> None:
    from handlers import get_portfolio
    from metrics import portfolio_totals
    from prices import build_price_lookup
    from store import CsvStore

    items = get_portfolio(CsvStore.from_config(), build_price_lookup())
    if not items:
        print("Portfolio is empty. Use 'add' to record a purchase.")
        return

    print(
        f"\n{'ID':<14} {'Stock':<20} {'Qty':>6} {'Buy':>10} {'Price':>10} {'Value':>14} "
        f"{'P/L':>14} {'P/L %':>9} {'Days':>5} {'Weight':>7} {'To target':>12}"
    )
    print("-" * 133)
    for i in items:
        remaining = _money(i.remaining_gain) if i.remaining_gain is not None else "-"
        print(
            f"{i.id:<14} {i.name[:20]:<20} {i.quantity:>6} {i.buy_price:>10.2f} {i.current_price:>10.2f} "
            f"{_money(i.current_value):>14} {_money(i.gain_loss):>14} {i.gain_loss_percent:>+8.2f}% "
            f"{i.days_since_buy:>5} {i.portfolio_weightage or 0:>6.1f}% {remaining:>12}"
        )

    totals = portfolio_totals(items)
    print("-" * 133)
    print(f"  Total value:       {_money(totals.total_value)}")
    print(f"  Total investment:  {_money(totals.total_investment)}")
    print(f"  Overall P/L:       {_money(totals.overall_gain_loss)} ({_pct(totals.overall_gain_loss_percent)})")
    print()


def cmd_closed(args: argparse.Namespace) -> None:
    from handlers import get_closed_positions
    from store import CsvStore

    closed = get_closed_positions(CsvStore.from_config())
    if not closed:
        print("No closed positions yet.")
        return

    print(
        f"\n{'ID':<14} {'Stock':<20} {'Qty':>6} {'Bought':<10} {'Buy Value':>14} {'Sold':<10} "
        f"{'Sell Value':>14} {'Gain':>14} {'Days':>5} {'% Gain':>9} {'% Annual':>10}"
    )
    print("-" * 138)
    for c in closed:
        print(
            f"{c.id:<14} {c.name[:20]:<20} {c.quantity:>6} {c.buy_date.isoformat():<10} "
            f"{_money(c.buy_value):>14} {c.sell_date.isoformat():<10} {_money(c.sell_value):>14} "
            f"{_money(c.gain):>14} {c.days_held:>5} {_pct(c.percent_gain):>9} "
            f"{_pct(c.annualized_gain_percent):>10}"
        )
    print()


def cmd_summary(args: argparse.Namespace) -> None:
    from config import CAGR_START_DATE
    from handlers import get_summary
    from store import CsvStore

    start = datetime.fromisoformat(CAGR_START_DATE)
    s = get_summary(CsvStore.from_config(), start)
    print(f"\n{'Closed Positions Summary':=^50}")
    print(f"  Total buy value:   {_money(s.total_buy_value)}")
    print(f"  Total sell value:  {_money(s.total_sell_value)}")
    print(f"  Total profit:      {_money(s.total_profit)}")
    print(f"  Overall P/L:       {_pct(s.overall_pnl_percent)}")
    print(f"  CAGR since {start.date().isoformat()}: {_pct(s.cagr)}")
    print()


def cmd_search(args: argparse.Namespace) -> None:
    from handlers import get_stock_suggestions
    from prices import build_price_lookup

    matches = get_stock_suggestions(build_price_lookup(), args.query)
    if not matches:
        print(f"No stocks matching '{args.query}'.")
        return
    for m in matches:
        print(f"  {m.symbol:<12} {m.name}")


def main() -> None:
    from config import LOG_LEVEL

    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(description="Stock portfolio tracker")
    sub = parser.add_subparsers(dest="command")

    add_p = sub.add_parser("add", help="Record a stock purchase")
    add_p.add_argument("name", help="Stock name as listed by the price source")
    add_p.add_argument("quantity", help="Number of shares")
    add_p.add_argument("buy_price", help="Price paid per share")
    add_p.add_argument("--date", help="Buy date, YYYY-MM-DD (default: today)")
    add_p.add_argument("--target", help="Target price per share")

    sell_p = sub.add_parser("sell", help="Sell a holding and move it to closed positions")
    sell_p.add_argument("id", help="Purchase ID (see 'portfolio')")
    sell_p.add_argument("sell_price", help="Sale price per share")
    sell_p.add_argument("--date", help="Sell date, YYYY-MM-DD (default: today)")

    del_p = sub.add_parser("delete", help="Permanently delete a closed position")
    del_p.add_argument("id", help="Closed position ID (see 'closed')")

    sub.add_parser("portfolio", help="Show active holdings with live metrics")
    sub.add_parser("closed", help="Show closed positions")
    sub.add_parser("summary", help="Show totals and CAGR over closed positions")

    search_p = sub.add_parser("search", help="Search known stock names")
    search_p.add_argument("query", help="Part of a stock name")

    args = parser.parse_args()

    commands = {
        "add": cmd_add,
        "sell": cmd_sell,
        "delete": cmd_delete,
        "portfolio": cmd_portfolio,
        "closed": cmd_closed,
        "summary": cmd_summary,
        "search": cmd_search,
    }

    if args.command in commands:
        commands[args.command](args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
