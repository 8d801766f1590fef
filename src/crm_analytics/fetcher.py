"""Paginated retrieval of deal records from the HubSpot search API.

Callers always receive the complete result set. Pages are requested one at a
time, each with the cursor returned by the previous page, and a failure on any
page aborts the whole fetch.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .hubspot_client import HubSpotClient
from .models import Deal
from .periods import to_epoch_millis

logger = logging.getLogger(__name__)

DEAL_ANALYTICS_PROPERTIES = [
    "dealname",
    "amount",
    "createdate",
    "closedate",
    "dealstage",
    "pipeline",
    "hubspot_owner_id",
]

OPEN_DEAL_PROPERTIES = [
    "dealname",
    "amount",
    "dealstage",
    "pipeline",
    "closedate",
    "hs_probability",
]


def _eq_filter(property_name: str, value: str) -> Dict[str, Any]:
    return {"propertyName": property_name, "operator": "EQ", "value": value}


def build_deal_filter_groups(
    start: datetime,
    end: Optional[datetime] = None,
    pipeline: Optional[str] = None,
    deal_stage: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Build the search filter groups for a date-bounded deal query.

    The first group bounds ``createdate``; the upper bound is only present
    when ``end`` is given. The second group carries the attribute equality
    filters and is left out entirely when none were supplied.
    """
    date_filters = [
        {"propertyName": "createdate", "operator": "GTE", "value": str(to_epoch_millis(start))}
    ]
    if end is not None:
        date_filters.append(
            {"propertyName": "createdate", "operator": "LTE", "value": str(to_epoch_millis(end))}
        )

    filter_groups: List[Dict[str, Any]] = [{"filters": date_filters}]

    additional_filters = []
    if pipeline:
        additional_filters.append(_eq_filter("pipeline", pipeline))
    if deal_stage:
        additional_filters.append(_eq_filter("dealstage", deal_stage))
    if owner_id:
        additional_filters.append(_eq_filter("hubspot_owner_id", owner_id))

    if additional_filters:
        filter_groups.append({"filters": additional_filters})

    return filter_groups


def search_all_deals(
    client: HubSpotClient,
    filter_groups: List[Dict[str, Any]],
    sorts: List[str],
    properties: List[str],
) -> List[Deal]:
    """Follow the search cursor until the source reports no further pages."""
    deals: List[Deal] = []
    after: Optional[str] = None
    pages = 0

    while True:
        page = client.search(
            "deals",
            filter_groups,
            sorts=sorts,
            properties=properties,
            limit=HubSpotClient.MAX_PAGE_SIZE,
            after=after,
        )
        pages += 1
        deals.extend(Deal.from_api(item) for item in page.results)

        if not page.next_after:
            break
        after = page.next_after

    logger.info("Fetched deals", extra={"pages": pages, "deals": len(deals)})
    return deals


def fetch_deals(
    client: HubSpotClient,
    start: datetime,
    end: Optional[datetime] = None,
    pipeline: Optional[str] = None,
    deal_stage: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> List[Deal]:
    """Fetch every deal created in ``[start, end]`` matching the optional filters.

    Returns an empty list when nothing matches. ``FetchError`` from any page
    propagates unchanged.
    """
    filter_groups = build_deal_filter_groups(
        start,
        end,
        pipeline=pipeline,
        deal_stage=deal_stage,
        owner_id=owner_id,
    )
    return search_all_deals(
        client,
        filter_groups,
        sorts=["createdate"],
        properties=DEAL_ANALYTICS_PROPERTIES,
    )


def fetch_open_deals(client: HubSpotClient, pipeline: Optional[str] = None) -> List[Deal]:
    """Fetch deals whose stage does not mark them closed, optionally within one pipeline."""
    filter_groups: List[Dict[str, Any]] = []
    if pipeline:
        filter_groups.append({"filters": [_eq_filter("pipeline", pipeline)]})

    deals = search_all_deals(
        client,
        filter_groups,
        sorts=["amount"],
        properties=OPEN_DEAL_PROPERTIES,
    )
    open_deals = [deal for deal in deals if "closed" not in (deal.stage or "")]

    logger.debug(
        "Filtered closed deals from open pipeline",
        extra={"fetched": len(deals), "open": len(open_deals)},
    )
    return open_deals
