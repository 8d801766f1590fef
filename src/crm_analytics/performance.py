"""Per-owner sales performance over a date range."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .aggregation import classify_deal_status, win_rate
from .errors import CrmAnalyticsError
from .fetcher import fetch_deals
from .hubspot_client import HubSpotClient
from .models import Deal, DealStatus, OwnerIdentity, OwnerPerformance, SalesPerformanceReport
from .periods import Granularity, format_date, parse_date

logger = logging.getLogger(__name__)


def calculate_performance_metrics(owner: OwnerIdentity, deals: List[Deal]) -> OwnerPerformance:
    """Compute outcome counts, won revenue, average won deal size and win rate."""
    won = [deal for deal in deals if classify_deal_status(deal.stage) is DealStatus.WON]
    lost_count = sum(1 for deal in deals if classify_deal_status(deal.stage) is DealStatus.LOST)
    open_count = len(deals) - len(won) - lost_count

    total_revenue = sum(deal.amount or 0.0 for deal in won)

    return OwnerPerformance(
        owner=owner,
        total_deals=len(deals),
        total_won=len(won),
        total_lost=lost_count,
        total_open=open_count,
        total_revenue=total_revenue,
        average_deal_size=total_revenue / len(won) if won else 0.0,
        win_rate=win_rate(len(won), lost_count),
    )


def group_deals_by_owner(
    deals: List[Deal],
    owner_ids: Optional[Sequence[str]] = None,
) -> Dict[str, List[Deal]]:
    """Group deals by owner id, dropping ownerless deals and owners outside ``owner_ids``."""
    allowed = set(owner_ids) if owner_ids else None
    deals_by_owner: Dict[str, List[Deal]] = {}

    for deal in deals:
        owner_id = deal.owner_id
        if not owner_id:
            continue
        if allowed is not None and owner_id not in allowed:
            continue
        deals_by_owner.setdefault(owner_id, []).append(deal)

    return deals_by_owner


def resolve_owner(client: HubSpotClient, owner_id: str) -> OwnerIdentity:
    """Look up an owner's identity, degrading to the bare id when the lookup fails."""
    try:
        return client.get_owner_by_id(owner_id)
    except CrmAnalyticsError as exc:
        logger.warning(
            "Owner lookup failed; reporting identifier only",
            extra={"owner_id": owner_id, "error": str(exc)},
        )
        return OwnerIdentity(id=owner_id)


def build_owner_performance(
    client: HubSpotClient,
    deals: List[Deal],
    owner_ids: Optional[Sequence[str]] = None,
) -> List[OwnerPerformance]:
    """Compute performance for each owner, sorted by won revenue descending.

    Each distinct owner is looked up once, sequentially.
    """
    deals_by_owner = group_deals_by_owner(deals, owner_ids)

    performance = [
        calculate_performance_metrics(resolve_owner(client, owner_id), owner_deals)
        for owner_id, owner_deals in deals_by_owner.items()
    ]
    performance.sort(key=lambda entry: entry.total_revenue, reverse=True)
    return performance


def get_sales_performance(
    client: HubSpotClient,
    granularity: str,
    start_date: str,
    end_date: Optional[str] = None,
    owner_ids: Optional[Sequence[str]] = None,
    pipeline: Optional[str] = None,
) -> SalesPerformanceReport:
    """Report per-owner performance across the whole date range.

    ``granularity`` is echoed in the report; performance is not split by period.
    """
    period = Granularity.parse(granularity)
    start = parse_date(start_date)
    end = parse_date(end_date) if end_date else None

    deals = fetch_deals(client, start, end, pipeline=pipeline)

    return SalesPerformanceReport(
        start_date=format_date(start),
        end_date=format_date(end or datetime.now(timezone.utc)),
        period=period.value,
        performance=build_owner_performance(client, deals, owner_ids),
    )
