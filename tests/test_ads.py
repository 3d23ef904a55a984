from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fusionops.errors import UpstreamError
from fusionops.tools.ads import build_spend_tree, fetch_fb_insights, spend_tree_to_dict
from fusionops.util import DateRange

RANGE = DateRange("2024-02-20", "2024-02-21")


def _row(campaign, adset, ad, spend):
    return {"campaign_name": campaign, "adset_name": adset, "ad_name": ad, "spend": spend}


def test_spend_tree_groups_in_first_appearance_order():
    rows = [
        _row("Zeta", "Broad", "ad-1", "10.50"),
        _row("Alpha", "LAL", "ad-2", "5"),
        _row("Zeta", "Broad", "ad-3", "4.50"),
        _row("Zeta", "Retarget", "ad-1", "1"),
        _row("Zeta", "Broad", "ad-1", "2"),
    ]
    tree = spend_tree_to_dict(build_spend_tree(rows))

    assert [c["name"] for c in tree] == ["Zeta", "Alpha"]
    zeta = tree[0]
    assert zeta["spend"] == pytest.approx(18.0)
    assert [a["name"] for a in zeta["adsets"]] == ["Broad", "Retarget"]
    broad = zeta["adsets"][0]
    assert broad["spend"] == pytest.approx(17.0)
    assert broad["ads"] == [{"name": "ad-1", "spend": 12.5}, {"name": "ad-3", "spend": 4.5}]


def test_spend_tree_parent_spend_matches_children():
    rows = [_row("C", "S1", f"ad-{i}", str(i * 1.25)) for i in range(1, 6)] + [_row("C", "S2", "x", "3")]
    (campaign,) = build_spend_tree(rows)
    for adset in campaign.children:
        assert adset.spend == pytest.approx(sum(ad.spend for ad in adset.children))
    assert campaign.spend == pytest.approx(sum(a.spend for a in campaign.children))


def test_spend_tree_unknown_names_and_bad_spend():
    rows = [
        {"spend": "7"},
        {"campaign_name": "", "adset_name": None, "ad_name": "", "spend": "oops"},
        _row("Unknown Campaign", "S", "A", "1"),
    ]
    tree = build_spend_tree(rows)

    assert len(tree) == 2
    unknown, literal = tree
    assert not unknown.name.is_known
    assert unknown.name.label == "Unknown Campaign"
    assert unknown.spend == 7.0
    assert unknown.children[0].name.label == "Unknown Adset"
    assert unknown.children[0].children[0].name.label == "Unknown Ad"
    assert literal.name.is_known
    assert literal.name.value == "Unknown Campaign"


def test_fetch_fb_insights_follows_paging():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url)
        if request.url.params.get("after") == "cursor-2":
            return httpx.Response(200, json={"data": [_row("C", "S", "B", "2")], "paging": {}})
        assert request.url.path == "/v18.0/act_123/insights"
        assert request.url.params["level"] == "ad"
        assert json.loads(request.url.params["time_range"]) == {"since": "2024-02-20", "until": "2024-02-21"}
        return httpx.Response(
            200,
            json={
                "data": [_row("C", "S", "A", "1")],
                "paging": {"next": "https://graph.facebook.com/v18.0/act_123/insights?after=cursor-2&access_token=t"},
            },
        )

    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await fetch_fb_insights(http, "t", "123", RANGE)

    rows = asyncio.run(_go())
    assert [r["ad_name"] for r in rows] == ["A", "B"]
    assert len(calls) == 2


def test_fetch_fb_insights_raises_upstream_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "Invalid OAuth access token."}})

    async def _go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            return await fetch_fb_insights(http, "bad", "act_123", RANGE)

    with pytest.raises(UpstreamError, match="Invalid OAuth access token"):
        asyncio.run(_go())
