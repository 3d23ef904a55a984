from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from fusionops.config import fb_base_url
from fusionops.errors import UpstreamError
from fusionops.names import ScopeName
from fusionops.util import DateRange, to_float

logger = logging.getLogger(__name__)

INSIGHT_FIELDS = ["campaign_name", "adset_name", "ad_name", "spend", "impressions", "clicks"]


@dataclass(frozen=True)
class SpendNode:
    name: ScopeName
    spend: float
    children: tuple["SpendNode", ...] = ()


def _account_path(ad_account_id: str) -> str:
    account_id = ad_account_id.strip().replace("act_", "")
    return f"act_{account_id}"


def _error_message(resp: httpx.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        return resp.text[:400]
    err = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(err, dict) and err.get("message"):
        return str(err["message"])
    return resp.text[:400]


async def fetch_fb_insights(
    client: httpx.AsyncClient,
    access_token: str,
    ad_account_id: str,
    date_range: DateRange,
) -> list[dict[str, Any]]:
    """All ad-level insight rows with spend > 0, following `paging.next` links."""
    url = f"{fb_base_url()}/{_account_path(ad_account_id)}/insights"
    params = {
        "access_token": access_token,
        "level": "ad",
        "fields": ",".join(INSIGHT_FIELDS),
        "time_range": json.dumps({"since": date_range.start, "until": date_range.end}, separators=(",", ":")),
        "limit": "500",
        "filtering": json.dumps([{"field": "spend", "operator": "GREATER_THAN", "value": "0"}], separators=(",", ":")),
    }

    rows: list[dict[str, Any]] = []
    next_url: str | None = url
    next_params: dict[str, Any] | None = params
    try:
        while next_url:
            resp = await client.get(next_url, params=next_params)
            if resp.status_code != 200:
                raise UpstreamError("Meta", f"{ad_account_id}: {_error_message(resp)}", status_code=resp.status_code)
            payload = resp.json()
            rows.extend(payload.get("data") or [])
            # paging.next already carries every query param
            next_url = (payload.get("paging") or {}).get("next")
            next_params = None
    except httpx.HTTPError as exc:
        raise UpstreamError("Meta", f"{ad_account_id}: {exc}") from exc
    except ValueError as exc:
        raise UpstreamError("Meta", f"{ad_account_id}: invalid JSON response") from exc

    logger.info("meta insights %s %s..%s: %d rows", ad_account_id, date_range.start, date_range.end, len(rows))
    return rows


def build_spend_tree(rows: list[dict[str, Any]]) -> list[SpendNode]:
    """Group flat insight rows into campaign -> adset -> ad, in first-appearance order.

    Each level accumulates the row spend on its own instead of summing its
    children, so campaign, adset and ad totals come from separate passes over
    the same values.
    """
    campaigns: dict[ScopeName, dict[str, Any]] = {}

    for r in rows:
        campaign_key = ScopeName.of("campaign", r.get("campaign_name"))
        adset_key = ScopeName.of("adset", r.get("adset_name"))
        ad_key = ScopeName.of("ad", r.get("ad_name"))
        spend = to_float(r.get("spend"))

        camp = campaigns.setdefault(campaign_key, {"spend": 0.0, "adsets": {}})
        camp["spend"] += spend

        adset = camp["adsets"].setdefault(adset_key, {"spend": 0.0, "ads": {}})
        adset["spend"] += spend

        adset["ads"][ad_key] = adset["ads"].get(ad_key, 0.0) + spend

    return [
        SpendNode(
            name=campaign_name,
            spend=camp["spend"],
            children=tuple(
                SpendNode(
                    name=adset_name,
                    spend=adset["spend"],
                    children=tuple(SpendNode(name=ad_name, spend=ad_spend) for ad_name, ad_spend in adset["ads"].items()),
                )
                for adset_name, adset in camp["adsets"].items()
            ),
        )
        for campaign_name, camp in campaigns.items()
    ]


def spend_tree_to_dict(tree: list[SpendNode]) -> list[dict[str, Any]]:
    return [
        {
            "name": c.name.label,
            "spend": c.spend,
            "adsets": [
                {
                    "name": a.name.label,
                    "spend": a.spend,
                    "ads": [{"name": ad.name.label, "spend": ad.spend} for ad in a.children],
                }
                for a in c.children
            ],
        }
        for c in tree
    ]
