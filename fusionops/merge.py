"""Join the Meta spend tree with the COC tree.

The join key at every level is exact name equality:
campaign_name == utmCampaign, adset_name == utmMedium, ad_name == utmContent.
"""

from __future__ import annotations

from typing import Any

from fusionops.config import AdAccountConfig
from fusionops.names import ScopeName
from fusionops.tools.ads import SpendNode
from fusionops.util import pct, ratio, to_float, to_int


def compute_kpis(fb_spend: float, coc_data: dict[str, Any] | None) -> dict[str, float]:
    spend = fb_spend or 0.0
    data = coc_data or {}
    sales_total = to_float(data.get("salesTotal"))
    sales = to_int(data.get("sales"))
    partials = to_int(data.get("partials"))

    # Declines are left out of this denominator, unlike conversionRate from
    # the COC aggregate, which is only the fallback.
    funnel = partials + sales
    conv_rate = pct(sales, funnel) if funnel > 0 else to_float(data.get("conversionRate"))

    return {
        "roas": ratio(sales_total, spend),
        "cpp": ratio(spend, sales),
        "aov": ratio(sales_total, sales),
        "convRate": conv_rate,
    }


def commerce_lookup_names(spend_tree: list[SpendNode]) -> list[str]:
    """Campaign names the COC lookup should be filtered by, in spend-tree order."""
    names: list[str] = []
    for campaign in spend_tree:
        if campaign.name.is_known and campaign.name.value not in names:
            names.append(campaign.name.value)
    return names


def _lookup(entries: dict[str, Any] | None, name: ScopeName) -> Any:
    if not entries or not name.is_known:
        return None
    return entries.get(name.value)


def _node(spend_node: SpendNode, coc_data: dict[str, Any] | None) -> dict[str, Any]:
    return {
        "name": spend_node.name.label,
        "known": spend_node.name.is_known,
        "fbSpend": spend_node.spend,
        "cocData": coc_data,
        **compute_kpis(spend_node.spend, coc_data),
    }


def merge_hierarchy(
    spend_tree: list[SpendNode],
    coc_tree: dict[str, dict[str, Any]] | None,
    ad_account: AdAccountConfig,
) -> dict[str, Any]:
    campaigns: list[dict[str, Any]] = []

    for fb_campaign in spend_tree:
        coc_campaign = _lookup(coc_tree, fb_campaign.name) or {}
        merged_campaign = _node(fb_campaign, coc_campaign.get("cocData"))
        if coc_campaign.get("error"):
            merged_campaign["cocError"] = coc_campaign["error"]

        adsets = []
        for fb_adset in fb_campaign.children:
            coc_adset = _lookup(coc_campaign.get("adsets"), fb_adset.name) or {}
            merged_adset = _node(fb_adset, coc_adset.get("cocData"))
            merged_adset["ads"] = [_node(fb_ad, _lookup(coc_adset.get("ads"), fb_ad.name)) for fb_ad in fb_adset.children]
            adsets.append(merged_adset)

        merged_campaign["adsets"] = adsets
        campaigns.append(merged_campaign)

    campaigns.sort(key=lambda c: c["fbSpend"], reverse=True)

    return {
        "fbAdAccountId": ad_account.fbAdAccountId,
        "cocCampaignId": ad_account.cocCampaignId,
        "cocCampaignName": ad_account.cocCampaignName,
        "cppTarget": ad_account.cppTarget,
        "fbSpend": sum(c["fbSpend"] for c in campaigns),
        "campaigns": campaigns,
    }
