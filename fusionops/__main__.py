from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

import httpx
from dotenv import load_dotenv

from fusionops.config import (
    HTTP_TIMEOUT,
    get_client,
    insight_spend_floor,
    insight_threshold_pct,
    load_clients,
)
from fusionops.errors import FusionError
from fusionops.pipeline import build_dashboard, build_insights
from fusionops.tools.ads import build_spend_tree, fetch_fb_insights, spend_tree_to_dict
from fusionops.util import DateRange, parse_iso_date


def _print(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, default=str))


async def _spend(client_id: str, ad_account_id: str, date_range: DateRange) -> list[dict[str, object]]:
    cfg = get_client(client_id)
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
        rows = await fetch_fb_insights(http, cfg.fbAccessToken, ad_account_id, date_range)
    return spend_tree_to_dict(build_spend_tree(rows))


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(prog="fusionops", description="Meta spend x Checkout Champ order reconciliation.")
    parser.add_argument("--log-level", type=str, default=os.environ.get("LOG_LEVEL", "WARNING"))

    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("clients", help="List configured clients (credentials omitted).")

    dash = sub.add_parser("dashboard", help="Merged campaign/adset/ad tree for every ad account of a client.")
    dash.add_argument("client_id", type=str)
    dash.add_argument("--start-date", type=str, required=True)
    dash.add_argument("--end-date", type=str, required=True)

    ins = sub.add_parser("insights", help="Flag CPP spikes, yesterday vs. trailing 7 days.")
    ins.add_argument("client_id", type=str)
    ins.add_argument("--today", type=str, default="", help="Reference date YYYY-MM-DD (default: today)")
    ins.add_argument("--spend-floor", type=float, default=None)
    ins.add_argument("--threshold", type=float, default=None)

    spend = sub.add_parser("spend", help="Meta spend tree only, for one ad account.")
    spend.add_argument("client_id", type=str)
    spend.add_argument("ad_account_id", type=str)
    spend.add_argument("--start-date", type=str, required=True)
    spend.add_argument("--end-date", type=str, required=True)

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        if args.cmd == "clients":
            _print({"clients": [c.public() for c in load_clients()]})
            return 0

        if args.cmd == "dashboard":
            date_range = DateRange.parse(args.start_date, args.end_date)
            _print(asyncio.run(build_dashboard(get_client(args.client_id), date_range)))
            return 0

        if args.cmd == "insights":
            today = parse_iso_date(args.today) if args.today else None
            result = asyncio.run(
                build_insights(
                    get_client(args.client_id),
                    today=today,
                    spend_floor=insight_spend_floor() if args.spend_floor is None else args.spend_floor,
                    threshold_pct=insight_threshold_pct() if args.threshold is None else args.threshold,
                )
            )
            _print(result)
            return 0

        if args.cmd == "spend":
            date_range = DateRange.parse(args.start_date, args.end_date)
            _print(asyncio.run(_spend(args.client_id, args.ad_account_id, date_range)))
            return 0
    except (FusionError, ValueError) as exc:
        raise SystemExit(f"error: {exc}") from exc

    return 1


def main_entry() -> int:
    load_dotenv()
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(main_entry())
