from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from fusionops.config import DEFAULT_SPEND_FLOOR, DEFAULT_THRESHOLD_PCT
from fusionops.util import pct_change, ratio, to_float, to_int


def account_avg_cpp(account: dict[str, Any]) -> float:
    """Total spend over total matched sales for one merged account result."""
    campaigns = account.get("campaigns") or []
    spend = sum(to_float(c.get("fbSpend")) for c in campaigns)
    sales = sum(to_int((c.get("cocData") or {}).get("sales")) for c in campaigns)
    return ratio(spend, sales)


def _known(node: dict[str, Any] | None) -> bool:
    # a missing flag means the name is real
    return bool(node) and node.get("known", True) is not False


def _by_name(nodes: list[dict[str, Any]] | None) -> dict[str, dict[str, Any]]:
    """Named nodes keyed by name. Unknown placeholders never take part in matching."""
    out: dict[str, dict[str, Any]] = {}
    for n in nodes or []:
        if _known(n):
            out.setdefault(str(n.get("name")), n)
    return out


def _match(index: dict[str, dict[str, Any]], node: dict[str, Any]) -> dict[str, Any] | None:
    return index.get(node["name"]) if _known(node) else None


def _walk(day: dict[str, Any], week: dict[str, Any]) -> Iterator[tuple[str, dict[str, Any], dict[str, Any] | None, dict[str, str]]]:
    week_campaigns = _by_name(week.get("campaigns"))
    for campaign in day.get("campaigns") or []:
        week_adsets = _by_name((_match(week_campaigns, campaign) or {}).get("adsets"))
        for adset in campaign.get("adsets") or []:
            week_adset = _match(week_adsets, adset)
            yield "adset", adset, week_adset, {"campaign": campaign["name"], "adset": adset["name"]}

            week_ads = _by_name((week_adset or {}).get("ads"))
            for ad in adset.get("ads") or []:
                path = {"campaign": campaign["name"], "adset": adset["name"], "ad": ad["name"]}
                yield "ad", ad, _match(week_ads, ad), path


def _round(value: float | None) -> float | None:
    return None if value is None else round(value, 2)


def detect_anomalies(
    day: dict[str, Any],
    week: dict[str, Any],
    spend_floor: float = DEFAULT_SPEND_FLOOR,
    threshold_pct: float = DEFAULT_THRESHOLD_PCT,
) -> list[dict[str, Any]]:
    """Adsets and ads whose yesterday CPP runs above the trailing week or the account average.

    `day` and `week` are merged account results for the same scope. A node
    missing from the week tree counts as week cpp 0, so only the account
    average can flag it.
    """
    avg_cpp = account_avg_cpp(week)
    flags: list[dict[str, Any]] = []

    for level, node, week_node, path in _walk(day, week):
        spend = to_float(node.get("fbSpend"))
        cpp = to_float(node.get("cpp"))
        if spend < spend_floor or cpp <= 0:
            continue

        week_cpp = to_float((week_node or {}).get("cpp"))
        vs_week = pct_change(cpp, week_cpp)
        vs_avg = pct_change(cpp, avg_cpp)

        above_week = vs_week is not None and vs_week > threshold_pct
        above_avg = vs_avg is not None and vs_avg > threshold_pct
        if not (above_week or above_avg):
            continue

        flags.append(
            {
                "level": level,
                **path,
                "name": node.get("name"),
                "spend": spend,
                "sales": to_int((node.get("cocData") or {}).get("sales")),
                "cpp": cpp,
                "weekCpp": week_cpp,
                "accountAvgCpp": avg_cpp,
                "vsWeekPct": _round(vs_week),
                "vsAvgPct": _round(vs_avg),
                "isRising": vs_week is not None and vs_week > 0,
                "reasons": [r for r, hit in (("vs_week", above_week), ("vs_account_avg", above_avg)) if hit],
            }
        )

    # unmatched nodes (no week cpp) sort last
    flags.sort(key=lambda f: (f["vsWeekPct"] is not None, f["vsWeekPct"] or 0.0), reverse=True)
    return flags
