"""Dashboard API — Meta spend merged with Checkout Champ orders.

Endpoints:
  GET /api/clients                    — configured clients (no credentials)
  GET /api/dashboard/{client_id}      — merged campaign tree per ad account
  GET /api/insights/{client_id}       — CPP spikes, yesterday vs. trailing 7 days
  GET /api/debug/coc/{client_id}      — raw COC responses for one campaign
  GET /api/debug/fb/{client_id}       — raw Meta insight rows for one ad account
  GET /api/debug/revenue/{client_id}  — completed-sale revenue breakdown for one campaign
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import APIRouter, HTTPException, Query

from fusionops.config import (
    HTTP_TIMEOUT,
    ClientConfig,
    get_client,
    insight_spend_floor,
    insight_threshold_pct,
    load_clients,
)
from fusionops.errors import ClientNotFound, ConfigError, UpstreamError
from fusionops.pipeline import build_dashboard, build_insights
from fusionops.tools.ads import build_spend_tree, fetch_fb_insights, spend_tree_to_dict
from fusionops.tools.coc import ORDER_QUERY, CocCredentials, STATUS_FILTERS, coc_raw, fetch_pages, revenue_breakdown
from fusionops.util import DateRange, fmt_coc_date

router = APIRouter()


def _client(client_id: str) -> ClientConfig:
    try:
        return get_client(client_id)
    except ClientNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _date_range(start_date: str, end_date: str) -> DateRange:
    if not start_date or not end_date:
        raise HTTPException(status_code=400, detail="startDate and endDate are required (YYYY-MM-DD)")
    try:
        return DateRange.parse(start_date, end_date)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid date range: {exc}") from exc


@router.get("/clients")
async def list_clients():
    try:
        clients = load_clients()
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"clients": [c.public() for c in clients]}


@router.get("/dashboard/{client_id}")
async def dashboard(
    client_id: str,
    start_date: str = Query(default="", alias="startDate"),
    end_date: str = Query(default="", alias="endDate"),
):
    date_range = _date_range(start_date, end_date)
    client_cfg = _client(client_id)
    return await build_dashboard(client_cfg, date_range)


@router.get("/insights/{client_id}")
async def insights(
    client_id: str,
    spend_floor: float | None = Query(default=None, alias="spendFloor"),
    threshold: float | None = Query(default=None),
):
    client_cfg = _client(client_id)
    return await build_insights(
        client_cfg,
        spend_floor=insight_spend_floor() if spend_floor is None else spend_floor,
        threshold_pct=insight_threshold_pct() if threshold is None else threshold,
    )


@router.get("/debug/coc/{client_id}")
async def debug_coc(
    client_id: str,
    campaign_id: str = Query(default="", alias="campaignId"),
    start_date: str = Query(default="", alias="startDate"),
    end_date: str = Query(default="", alias="endDate"),
):
    """Hit COC directly and return the unprocessed responses, one per record kind."""
    if not campaign_id:
        raise HTTPException(status_code=400, detail="Required: campaignId, startDate (YYYY-MM-DD), endDate (YYYY-MM-DD)")
    date_range = _date_range(start_date, end_date)
    client_cfg = _client(client_id)
    creds = CocCredentials(login_id=client_cfg.cocLoginId, password=client_cfg.cocPassword)

    base: dict[str, Any] = {
        "campaignId": campaign_id,
        "startDate": fmt_coc_date(date_range.start),
        "endDate": fmt_coc_date(date_range.end),
    }
    results: dict[str, Any] = {}
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
        for status, filters in STATUS_FILTERS.items():
            results[f"order/query ({status})"] = await coc_raw(http, creds, ORDER_QUERY, {**base, **filters})

    return {"campaignId": campaign_id, "dateRange": f"{date_range.start} → {date_range.end}", "results": results}


@router.get("/debug/fb/{client_id}")
async def debug_fb(
    client_id: str,
    ad_account_id: str = Query(default="", alias="adAccountId"),
    start_date: str = Query(default="", alias="startDate"),
    end_date: str = Query(default="", alias="endDate"),
):
    """Raw Meta insight rows for one ad account, plus the spend tree built from them."""
    if not ad_account_id:
        raise HTTPException(status_code=400, detail="Required: adAccountId, startDate (YYYY-MM-DD), endDate (YYYY-MM-DD)")
    date_range = _date_range(start_date, end_date)
    client_cfg = _client(client_id)

    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
            rows = await fetch_fb_insights(http, client_cfg.fbAccessToken, ad_account_id, date_range)
    except UpstreamError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return {
        "adAccountId": ad_account_id,
        "dateRange": f"{date_range.start} → {date_range.end}",
        "rowCount": len(rows),
        "rows": rows,
        "tree": spend_tree_to_dict(build_spend_tree(rows)),
    }


@router.get("/debug/revenue/{client_id}")
async def debug_revenue(
    client_id: str,
    campaign_id: str = Query(default="", alias="campaignId"),
    start_date: str = Query(default="", alias="startDate"),
    end_date: str = Query(default="", alias="endDate"),
):
    """Completed-sale revenue for one COC campaign, split into amount, shipping, tax and fees."""
    if not campaign_id:
        raise HTTPException(status_code=400, detail="Required: campaignId, startDate (YYYY-MM-DD), endDate (YYYY-MM-DD)")
    date_range = _date_range(start_date, end_date)
    client_cfg = _client(client_id)
    creds = CocCredentials(login_id=client_cfg.cocLoginId, password=client_cfg.cocPassword)

    filters = {
        "campaignId": campaign_id,
        "startDate": fmt_coc_date(date_range.start),
        "endDate": fmt_coc_date(date_range.end),
        **STATUS_FILTERS["complete"],
    }
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as http:
        result = await fetch_pages(http, creds, ORDER_QUERY, filters)
    if result.failed_outright:
        raise HTTPException(status_code=502, detail=result.error)

    return {
        "campaignId": campaign_id,
        "dateRange": f"{date_range.start} → {date_range.end}",
        **revenue_breakdown(result.records),
    }
