"""Checkout Champ ("COC") order queries and the commerce-side hierarchy.

COC takes GET requests with loginId & password as query params, e.g.
https://api.checkoutchamp.com/order/query/?loginId=X&password=Y&...
Responses look like {"result": "SUCCESS", "message": {"totalResults": N, "data": [...]}}.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from fusionops.config import coc_base_url, coc_page_size
from fusionops.errors import UpstreamError
from fusionops.util import DateRange, first_present, fmt_coc_date, pct, ratio, to_float, to_int

logger = logging.getLogger(__name__)

ORDER_QUERY = "/order/query/"

RecordStatus = Literal["complete", "decline", "partial"]

# Server-side filters for the three record kinds.
STATUS_FILTERS: dict[RecordStatus, dict[str, str]] = {
    "complete": {"orderStatus": "COMPLETE", "orderType": "NEW_SALE"},
    "decline": {"orderStatus": "DECLINED"},
    "partial": {"orderStatus": "PARTIAL"},
}

UPSELL_PRODUCT_TYPES = {"UPSALE", "UPSELL"}


@dataclass(frozen=True)
class CocCredentials:
    login_id: str
    password: str

    def params(self) -> dict[str, str]:
        return {"loginId": self.login_id, "password": self.password}


def _message(payload: dict[str, Any]) -> dict[str, Any]:
    msg = payload.get("message")
    return msg if isinstance(msg, dict) else {}


def _page_records(payload: dict[str, Any]) -> list[dict[str, Any]]:
    data = _message(payload).get("data")
    if data is None:
        data = payload.get("data")
    if isinstance(data, dict):
        data = list(data.values())
    return [r for r in (data or []) if isinstance(r, dict)]


@dataclass(frozen=True)
class PagedResult:
    records: list[dict[str, Any]]
    error: str | None = None
    failed_page: int | None = None

    @property
    def failed_outright(self) -> bool:
        """The query broke on its first page, so `records` says nothing about COC."""
        return self.failed_page == 1


async def fetch_pages(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    endpoint: str,
    filters: dict[str, Any],
    *,
    page_size: int | None = None,
) -> PagedResult:
    """Every record of a filtered COC query, page by page.

    Stops once the reported `totalResults` is reached, on an empty page, or
    when COC answers with a non-SUCCESS result. An HTTP failure ends this
    query only; what was collected so far comes back with the error attached.
    """
    size = page_size or coc_page_size()
    url = f"{coc_base_url()}{endpoint}"
    records: list[dict[str, Any]] = []
    reported_total: int | None = None
    page = 1

    while True:
        params = {**creds.params(), **filters, "page": page, "resultsPerPage": size}
        try:
            resp = await client.get(url, params=params)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            logger.warning("COC %s page %d failed, keeping %d records: %s", endpoint, page, len(records), exc)
            return PagedResult(records, error=f"COC {endpoint} error: {exc}", failed_page=page)
        except ValueError:
            logger.warning("COC %s page %d returned invalid JSON, keeping %d records", endpoint, page, len(records))
            return PagedResult(records, error=f"COC {endpoint} returned invalid JSON", failed_page=page)

        # COC reports "no results" as result=ERROR too
        if not isinstance(payload, dict) or str(payload.get("result") or "").upper() != "SUCCESS":
            logger.debug("COC %s page %d: %s", endpoint, page, payload.get("message") if isinstance(payload, dict) else payload)
            break

        if page == 1 and _message(payload).get("totalResults") is not None:
            reported_total = to_int(_message(payload).get("totalResults"))

        batch = _page_records(payload)
        if not batch:
            break
        records.extend(batch)
        if reported_total is not None and len(records) >= reported_total:
            break
        page += 1

    return PagedResult(records)


async def fetch_all(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    endpoint: str,
    filters: dict[str, Any],
    *,
    page_size: int | None = None,
) -> list[dict[str, Any]]:
    """Records of `fetch_pages`; empty when the first page already failed."""
    return (await fetch_pages(client, creds, endpoint, filters, page_size=page_size)).records


def _order_filters(campaign_id: str, date_range: DateRange, status: RecordStatus, utm_campaign: str | None) -> dict[str, Any]:
    filters: dict[str, Any] = {
        "campaignId": campaign_id,
        "startDate": fmt_coc_date(date_range.start),
        "endDate": fmt_coc_date(date_range.end),
        **STATUS_FILTERS[status],
    }
    if utm_campaign is not None:
        filters["utmCampaign"] = utm_campaign
    return filters


def _line_items(record: dict[str, Any]) -> list[dict[str, Any]]:
    items = record.get("items")
    if isinstance(items, dict):
        items = list(items.values())
    return [i for i in (items or []) if isinstance(i, dict)]


def _is_upsell(item: dict[str, Any]) -> bool:
    if str(item.get("productType") or "").upper() in UPSELL_PRODUCT_TYPES:
        return True
    return str(item.get("isUpsale") or "").strip().lower() in {"1", "true", "yes"}


def aggregate(sale_records: Iterable[dict[str, Any]], decline_count: int, partial_count: int) -> dict[str, Any]:
    """Reduce completed-sale records plus pre-counted declines/partials to COC metrics."""
    sales = 0
    sales_total = 0.0
    upsells = 0
    upsell_total = 0.0
    refund_amount = 0.0
    shipping = 0.0

    for r in sale_records:
        sales += 1
        record_shipping = to_float(r.get("baseShipping")) + to_float(r.get("shipUpcharge"))
        sales_total += to_float(r.get("totalAmount")) + record_shipping + to_float(r.get("salesTax"))
        shipping += record_shipping
        refund_amount += to_float(first_present(r, "refundAmount", "totalRefunded"))

        for item in _line_items(r):
            if _is_upsell(item):
                upsells += 1
                upsell_total += to_float(item.get("price"))

    declines = int(decline_count)
    partials = int(partial_count)
    attempts = partials + sales + declines
    conversion_rate = pct(sales, attempts)

    return {
        "partials": partials,
        "sales": sales,
        "declines": declines,
        "salesTotal": sales_total,
        "upsells": upsells,
        "upsellTotal": upsell_total,
        "refundAmount": refund_amount,
        "shipping": shipping,
        "netRevenue": sales_total + upsell_total - refund_amount,
        "avgTicket": ratio(sales_total, sales),
        "conversionRate": conversion_rate,
        "declineRate": pct(declines, sales + declines),
        # same formula as conversionRate, kept for API consumers reading salesRate
        "salesRate": conversion_rate,
    }


def dedupe_declines(records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    out: list[dict[str, Any]] = []
    for r in records:
        order_id = first_present(r, "orderId", "order_id")
        if order_id is not None:
            key = str(order_id)
            if key in seen:
                continue
            seen.add(key)
        out.append(r)
    return out


async def _fetch_by_status(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    campaign_id: str,
    date_range: DateRange,
    utm_campaign: str | None,
) -> dict[RecordStatus, list[dict[str, Any]]]:
    """Records of the three kinds for one campaign, optionally narrowed to a utmCampaign.

    Raises UpstreamError when any kind failed before its first page arrived,
    since zero records there would read as zero sales.
    """
    statuses: list[RecordStatus] = ["complete", "decline", "partial"]
    results = await asyncio.gather(
        *(
            fetch_pages(client, creds, ORDER_QUERY, _order_filters(campaign_id, date_range, s, utm_campaign))
            for s in statuses
        ),
        return_exceptions=True,
    )
    # let all three finish before surfacing a failure
    for result in results:
        if isinstance(result, BaseException):
            raise result
    for status, result in zip(statuses, results):
        if result.failed_outright:
            raise UpstreamError("COC", f"{status} orders: {result.error}")
    by_status: dict[RecordStatus, list[dict[str, Any]]] = {s: r.records for s, r in zip(statuses, results)}
    by_status["decline"] = dedupe_declines(by_status["decline"])
    return by_status


def _metrics_for(tagged: list[tuple[RecordStatus, dict[str, Any]]]) -> dict[str, Any]:
    sales = [r for status, r in tagged if status == "complete"]
    declines = sum(1 for status, _ in tagged if status == "decline")
    partials = sum(1 for status, _ in tagged if status == "partial")
    return aggregate(sales, declines, partials)


def _tag(record: dict[str, Any], key: str) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    s = str(value)
    return s or None


def group_by_tags(by_status: dict[RecordStatus, list[dict[str, Any]]]) -> dict[str, Any]:
    """Campaign-level entry with adsets keyed by utmMedium and ads by utmContent.

    Every level aggregates its own slice of raw records. Records without a
    medium tag only count at campaign level; records without a content tag
    stop at adset level.
    """
    tagged: list[tuple[RecordStatus, dict[str, Any]]] = [
        (status, r) for status, records in by_status.items() for r in records
    ]

    adsets: dict[str, list[tuple[RecordStatus, dict[str, Any]]]] = {}
    for status, r in tagged:
        medium = _tag(r, "utmMedium")
        if medium is not None:
            adsets.setdefault(medium, []).append((status, r))

    out_adsets: dict[str, Any] = {}
    for medium, adset_records in adsets.items():
        ads: dict[str, list[tuple[RecordStatus, dict[str, Any]]]] = {}
        for status, r in adset_records:
            content = _tag(r, "utmContent")
            if content is not None:
                ads.setdefault(content, []).append((status, r))
        out_adsets[medium] = {
            "cocData": _metrics_for(adset_records),
            "ads": {content: _metrics_for(ad_records) for content, ad_records in ads.items()},
        }

    return {"cocData": _metrics_for(tagged), "adsets": out_adsets}


async def build_commerce_tree(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    campaign_id: str,
    date_range: DateRange,
    campaign_names: list[str],
) -> dict[str, dict[str, Any]]:
    """COC metrics per ad-platform campaign name, matched on utmCampaign.

    Names run one after another to bound load on COC; the three record kinds
    for a name are fetched concurrently. A failing name gets an `error` entry
    and the rest carry on.
    """
    results: dict[str, dict[str, Any]] = {}

    for name in campaign_names:
        try:
            by_status = await _fetch_by_status(client, creds, campaign_id, date_range, name)
            results[name] = group_by_tags(by_status)
        except Exception as exc:
            logger.error('COC lookup failed for campaign "%s": %s', name, exc)
            results[name] = {"cocData": None, "adsets": {}, "error": str(exc) or exc.__class__.__name__}

    return results


async def coc_campaign_totals(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    campaign_id: str,
    date_range: DateRange,
) -> dict[str, Any] | None:
    """Account-level totals for a COC campaign, not filtered by any UTM tag."""
    try:
        by_status = await _fetch_by_status(client, creds, campaign_id, date_range, None)
    except Exception as exc:
        logger.error("COC totals failed for campaign %s: %s", campaign_id, exc)
        return None
    return aggregate(by_status["complete"], len(by_status["decline"]), len(by_status["partial"]))


REVENUE_FIELDS = ("totalAmount", "baseShipping", "salesTax", "surcharge", "shipUpcharge")


def revenue_breakdown(records: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Where completed-order revenue comes from, field by field.

    `orders` lists only orders carrying shipping, surcharge or upcharge on top
    of their amount.
    """
    totals = {field: 0.0 for field in REVENUE_FIELDS}
    orders: list[dict[str, Any]] = []
    count = 0

    for r in records:
        count += 1
        amounts = {field: to_float(r.get(field)) for field in REVENUE_FIELDS}
        for field, amount in amounts.items():
            totals[field] += amount
        if amounts["baseShipping"] > 0 or amounts["surcharge"] > 0 or amounts["shipUpcharge"] > 0:
            orders.append({"orderId": r.get("orderId"), **amounts, "combined": round(sum(amounts.values()), 2)})

    return {
        "totalOrders": count,
        "totalRevenue": round(totals["totalAmount"], 2),
        "totalRevenueWithAll": round(sum(totals.values()), 2),
        "breakdown": {field: round(total, 2) for field, total in totals.items()},
        "orders": orders,
    }


async def coc_raw(
    client: httpx.AsyncClient,
    creds: CocCredentials,
    endpoint: str,
    extra_params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Single unpaginated call, returned as-is for inspection."""
    url = f"{coc_base_url()}/{endpoint.strip('/')}/"
    try:
        resp = await client.get(url, params={**creds.params(), **(extra_params or {})})
    except httpx.HTTPError as exc:
        return {"status": None, "error": str(exc)}
    try:
        body: Any = resp.json()
    except ValueError:
        body = resp.text[:2000]
    if resp.status_code >= 400:
        return {"status": resp.status_code, "error": body}
    return {"status": resp.status_code, "data": body}
