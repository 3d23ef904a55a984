from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any

import httpx

from fusionops.config import HTTP_TIMEOUT, AdAccountConfig, ClientConfig
from fusionops.fanout import Outcome, gather_outcomes, partition
from fusionops.insights import account_avg_cpp, detect_anomalies
from fusionops.merge import commerce_lookup_names, merge_hierarchy
from fusionops.tools.ads import build_spend_tree, fetch_fb_insights
from fusionops.tools.coc import CocCredentials, build_commerce_tree, coc_campaign_totals
from fusionops.util import DateRange, trailing_range, yesterday_range

logger = logging.getLogger(__name__)


def _creds(client_cfg: ClientConfig) -> CocCredentials:
    return CocCredentials(login_id=client_cfg.cocLoginId, password=client_cfg.cocPassword)


def _error_record(outcome: Outcome[AdAccountConfig, Any]) -> dict[str, Any]:
    account = outcome.item
    return {
        "scopeId": account.fbAdAccountId,
        "fbAdAccountId": account.fbAdAccountId,
        "cocCampaignName": account.cocCampaignName,
        "message": str(outcome.error) or outcome.error.__class__.__name__,
    }


async def build_account_result(
    http: httpx.AsyncClient,
    client_cfg: ClientConfig,
    ad_account: AdAccountConfig,
    date_range: DateRange,
) -> dict[str, Any]:
    """Merged campaign tree for one ad account / COC campaign pairing.

    The COC hierarchy is filtered by the campaign names Meta reports, so it
    can only start once the insights fetch is done.
    """
    creds = _creds(client_cfg)
    fb_rows, coc_totals = await asyncio.gather(
        fetch_fb_insights(http, client_cfg.fbAccessToken, ad_account.fbAdAccountId, date_range),
        coc_campaign_totals(http, creds, ad_account.cocCampaignId, date_range),
        return_exceptions=True,
    )
    if isinstance(fb_rows, BaseException):
        raise fb_rows
    if isinstance(coc_totals, BaseException):
        raise coc_totals

    spend_tree = build_spend_tree(fb_rows)
    coc_tree = await build_commerce_tree(
        http,
        creds,
        ad_account.cocCampaignId,
        date_range,
        commerce_lookup_names(spend_tree),
    )

    merged = merge_hierarchy(spend_tree, coc_tree, ad_account)
    merged["cocTotals"] = coc_totals
    return merged


async def _dashboard_accounts(
    http: httpx.AsyncClient,
    client_cfg: ClientConfig,
    date_range: DateRange,
) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
    outcomes = await gather_outcomes(
        lambda account: build_account_result(http, client_cfg, account, date_range),
        client_cfg.adAccounts,
    )
    ok, failed = partition(outcomes)
    results = sorted((o.value for o in ok), key=lambda r: str(r.get("cocCampaignName") or "").casefold())
    return results, [_error_record(o) for o in failed]


async def build_dashboard(
    client_cfg: ClientConfig,
    date_range: DateRange,
    *,
    http: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    if http is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as owned:
            return await build_dashboard(client_cfg, date_range, http=owned)

    results, errors = await _dashboard_accounts(http, client_cfg, date_range)
    logger.info("dashboard %s %s..%s: %d accounts, %d errors", client_cfg.id, date_range.start, date_range.end, len(results), len(errors))
    return {
        "clientId": client_cfg.id,
        "clientName": client_cfg.name,
        "startDate": date_range.start,
        "endDate": date_range.end,
        "adAccounts": results,
        "errors": errors,
    }


async def build_insights(
    client_cfg: ClientConfig,
    *,
    today: date | None = None,
    spend_floor: float,
    threshold_pct: float,
    http: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Yesterday vs. the trailing 7 days, per ad account."""
    if http is None:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as owned:
            return await build_insights(
                client_cfg, today=today, spend_floor=spend_floor, threshold_pct=threshold_pct, http=owned
            )

    today = today or date.today()
    day_range = yesterday_range(today)
    week_range = trailing_range(today, 7)

    (day_results, day_errors), (week_results, week_errors) = await asyncio.gather(
        _dashboard_accounts(http, client_cfg, day_range),
        _dashboard_accounts(http, client_cfg, week_range),
    )

    week_by_account = {r["fbAdAccountId"]: r for r in week_results}
    accounts = []
    for day in day_results:
        week = week_by_account.get(day["fbAdAccountId"])
        if week is None:
            continue
        accounts.append(
            {
                "fbAdAccountId": day["fbAdAccountId"],
                "cocCampaignName": day["cocCampaignName"],
                "accountAvgCpp": account_avg_cpp(week),
                "flags": detect_anomalies(day, week, spend_floor, threshold_pct),
            }
        )

    return {
        "clientId": client_cfg.id,
        "clientName": client_cfg.name,
        "day": day_range.as_dict(),
        "week": week_range.as_dict(),
        "spendFloor": spend_floor,
        "thresholdPct": threshold_pct,
        "accounts": accounts,
        "errors": [{**e, "window": "day"} for e in day_errors] + [{**e, "window": "week"} for e in week_errors],
    }
