"""Command-line interface for the Personal Finance Tracker.

Usage:
  python -m finance_tracker.cli summary --input sample_data/transactions.csv
  python -m finance_tracker.cli recommend --input tx.csv --income 5000 --model 50-30-20
  python -m finance_tracker.cli rebalance --holdings holdings.csv --profile moderate
  python -m finance_tracker.cli duplicates --subscriptions subs.csv
  python -m finance_tracker.cli init-db
"""

from __future__ import annotations

import argparse
import datetime as dt
import json
import logging
from dataclasses import asdict
from typing import Dict, List, Optional

from .categorizer import categorize_transactions
from .config import AppConfig, configure_logging
from .data_loader import load_csv_files, load_holdings_csv, load_subscriptions_csv
from .portfolio import RISK_PROFILES, rebalancing_summary, validate_targets
from .recommendations import MODEL_TYPES, analyze_spending, generate_recommendation, lookback_start
from .reports import (
    build_summary,
    export_summary_csv,
    format_recommendation_report,
    format_text_report,
    save_json,
)
from .subscriptions import find_duplicates

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Personal Finance Tracker")
    p.add_argument("--log-level", help="Logging level (defaults to $LOG_LEVEL or INFO)")
    sub = p.add_subparsers(dest="command", required=True)

    s = sub.add_parser("summary", help="Income, expense and category summary")
    s.add_argument("--input", "-i", nargs="+", required=True, help="CSV file(s) to load")
    s.add_argument("--config", "-c", help="Path to JSON config with rules/budgets")
    s.add_argument("--from", dest="date_from", help="Start date (YYYY-MM-DD)")
    s.add_argument("--to", dest="date_to", help="End date (YYYY-MM-DD)")
    s.add_argument("--json", dest="json_out", help="Write summary JSON to path")
    s.add_argument("--csv", dest="csv_out", help="Write summary CSV to path")

    r = sub.add_parser("recommend", help="Suggest a monthly budget from spending history")
    r.add_argument("--input", "-i", nargs="+", required=True, help="CSV file(s) to load")
    r.add_argument("--income", type=float, required=True, help="Monthly income")
    r.add_argument("--model", choices=MODEL_TYPES, default="traditional")
    r.add_argument("--months", type=int, default=3, help="Months of history to analyse")
    r.add_argument("--config", "-c", help="Path to JSON config with rules/need keywords")
    r.add_argument("--json", dest="json_out", action="store_true", help="Print JSON instead of text")

    b = sub.add_parser("rebalance", help="Compare holdings with target allocations")
    b.add_argument("--holdings", required=True, help="Holdings CSV")
    b.add_argument("--target", action="append", default=[], metavar="CLASS=PCT", help="Target allocation")
    b.add_argument("--profile", choices=sorted(RISK_PROFILES), help="Use a named risk profile")
    b.add_argument("--threshold", type=float, help="Drift threshold in percentage points")
    b.add_argument("--config", "-c", help="Path to JSON config with default targets")

    d = sub.add_parser("duplicates", help="Find overlapping subscriptions")
    d.add_argument("--subscriptions", required=True, help="Subscriptions CSV")

    sub.add_parser("init-db", help="Create database tables")
    return p.parse_args(argv)


def _parse_date(d: Optional[str]) -> Optional[dt.date]:
    if not d:
        return None
    return dt.date.fromisoformat(d)


def _parse_targets(pairs: List[str]) -> Dict[str, float]:
    targets: Dict[str, float] = {}
    for pair in pairs:
        name, sep, pct = pair.partition("=")
        if not sep:
            raise ValueError(f"Invalid target '{pair}', expected CLASS=PCT")
        targets[name.strip()] = float(pct)
    return targets


def _summary(args: argparse.Namespace) -> int:
    cfg = AppConfig.load(args.config)
    txns = load_csv_files(args.input)

    # Optional date filtering
    dfrom = _parse_date(args.date_from)
    dto = _parse_date(args.date_to)
    if dfrom or dto:
        txns = [t for t in txns if (not dfrom or t.date >= dfrom) and (not dto or t.date <= dto)]

    categorize_transactions(txns, cfg.rules)

    allocations = [{"name": b.category, "amount_allocated": b.monthly_limit} for b in cfg.budgets]
    summary = build_summary(txns, allocations or None)
    print(format_text_report(summary))

    if args.json_out:
        save_json(summary, args.json_out)
        print(f"\nSaved JSON summary to: {args.json_out}")
    if args.csv_out:
        export_summary_csv(summary, args.csv_out)
        print(f"Saved CSV summary to: {args.csv_out}")
    return 0


def _recommend(args: argparse.Namespace) -> int:
    cfg = AppConfig.load(args.config)
    txns = load_csv_files(args.input)
    if txns:
        # The window ends at the newest transaction so old exports still work
        start = lookback_start(max(t.date for t in txns), args.months)
        txns = [t for t in txns if t.date >= start]
    categorize_transactions(txns, cfg.rules)
    patterns = analyze_spending(txns, args.months)
    rec = generate_recommendation(patterns, args.income, args.model, cfg.need_keywords).to_dict()
    if args.json_out:
        print(json.dumps(rec, indent=2))
    else:
        print(format_recommendation_report(rec))
    return 0


def _rebalance(args: argparse.Namespace) -> int:
    cfg = AppConfig.load(args.config)
    holdings = load_holdings_csv(args.holdings)
    if args.profile:
        targets = dict(RISK_PROFILES[args.profile])
    elif args.target:
        targets = _parse_targets(args.target)
    else:
        targets = dict(cfg.target_allocation)
    errors = validate_targets(targets)
    if errors:
        for message in errors:
            logger.error(message)
        return 2
    threshold = args.threshold if args.threshold is not None else cfg.rebalance_threshold
    summary = rebalancing_summary(holdings, targets, threshold)

    print(f"Portfolio value: ${summary['portfolio_value']:.2f}")
    print(f"Total drift:     {summary['total_drift']:.2f} pts (threshold {threshold:g})")
    print("")
    for a in summary["actions"]:
        print(
            f"{a['asset_class'][:18]:18} {a['current_percent']:6.2f}% -> {a['target_percent']:6.2f}%  "
            f"{a['action'].upper():4}  ${a['difference']:>12.2f}"
        )
    print("")
    print("Rebalancing recommended." if summary["needs_rebalancing"] else "Portfolio is within tolerance.")
    return 0


def _duplicates(args: argparse.Namespace) -> int:
    subs = [asdict(s) for s in load_subscriptions_csv(args.subscriptions)]
    groups = find_duplicates(subs)
    if not groups:
        print("No overlapping subscriptions found.")
        return 0
    for group in groups:
        names = ", ".join(s["name"] for s in group["subscriptions"])
        print(f"[{group['category']}] {names}")
        print(f"  Monthly total ${group['monthly_total']:.2f}, potential savings ${group['potential_savings']:.2f}")
        for reason in group["reasons"]:
            print(f"  - {reason}")
        print(f"  {group['recommendation']}")
    return 0


def _init_db(args: argparse.Namespace) -> int:
    from .webapp import create_app

    app = create_app()
    logger.info("Database ready at %s", app.config["SQLALCHEMY_DATABASE_URI"])
    return 0


_COMMANDS = {
    "summary": _summary,
    "recommend": _recommend,
    "rebalance": _rebalance,
    "duplicates": _duplicates,
    "init-db": _init_db,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)
    try:
        return _COMMANDS[args.command](args)
    except (OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
