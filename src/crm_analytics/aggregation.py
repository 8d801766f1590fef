"""Per-period deal aggregation.

Deals are bucketed by the period containing their creation date and each
bucket is summarized as a :class:`PeriodAnalytics`. Deal outcome is read from
the stage identifier: ``closedwon`` and ``closedlost`` substrings mark won and
lost deals, anything else is open.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from .fetcher import fetch_deals
from .hubspot_client import HubSpotClient
from .models import Deal, DealStatus, PeriodAnalytics, SalesAnalyticsReport
from .periods import Granularity, format_date, parse_date, period_key

logger = logging.getLogger(__name__)

CLOSED_WON_MARKER = "closedwon"
CLOSED_LOST_MARKER = "closedlost"


def classify_deal_status(stage: Optional[str]) -> DealStatus:
    """Classify a deal as won, lost or open from its stage identifier."""
    if stage and CLOSED_WON_MARKER in stage:
        return DealStatus.WON
    if stage and CLOSED_LOST_MARKER in stage:
        return DealStatus.LOST
    return DealStatus.OPEN


def win_rate(won: int, lost: int) -> float:
    """Return ``won / (won + lost)``, or ``0.0`` when no deal has closed."""
    closed = won + lost
    return won / closed if closed > 0 else 0.0


def summarize_period(period: str, deals: List[Deal]) -> PeriodAnalytics:
    """Compute count, amount and outcome statistics for one bucket of deals."""
    total_amount = 0.0
    counts = {status: 0 for status in DealStatus}

    for deal in deals:
        total_amount += deal.amount or 0.0
        counts[classify_deal_status(deal.stage)] += 1

    total_deals = len(deals)
    return PeriodAnalytics(
        period=period,
        total_deals=total_deals,
        total_amount=total_amount,
        won_deals=counts[DealStatus.WON],
        lost_deals=counts[DealStatus.LOST],
        open_deals=counts[DealStatus.OPEN],
        win_rate=win_rate(counts[DealStatus.WON], counts[DealStatus.LOST]),
        average_deal_size=total_amount / total_deals if total_deals > 0 else 0.0,
    )


def aggregate_deals_by_period(
    deals: Iterable[Deal],
    granularity: Granularity,
) -> List[PeriodAnalytics]:
    """Group deals by creation period and summarize each observed period.

    Results are sorted ascending by period key. Deals without a usable
    ``createdate`` cannot be bucketed and are skipped.
    """
    granularity = Granularity.parse(granularity)
    deals_by_period: Dict[str, List[Deal]] = {}

    for deal in deals:
        created_at = deal.created_at
        if created_at is None:
            logger.debug(
                "Skipping deal without a parseable createdate",
                extra={"deal_id": deal.id},
            )
            continue
        deals_by_period.setdefault(period_key(created_at, granularity), []).append(deal)

    return [
        summarize_period(period, deals_by_period[period])
        for period in sorted(deals_by_period)
    ]


def get_sales_analytics(
    client: HubSpotClient,
    granularity: str,
    start_date: str,
    end_date: Optional[str] = None,
    pipeline: Optional[str] = None,
    deal_stage: Optional[str] = None,
    owner_id: Optional[str] = None,
) -> SalesAnalyticsReport:
    """Fetch deals created in the date range and aggregate them per period.

    Args:
        client: HubSpot record store.
        granularity: One of ``daily``, ``weekly``, ``monthly``, ``quarterly``, ``yearly``.
        start_date: Inclusive ``YYYY-MM-DD`` lower bound on deal creation.
        end_date: Optional ``YYYY-MM-DD`` upper bound; no upper bound when omitted.
        pipeline: Optional pipeline id filter.
        deal_stage: Optional stage id filter.
        owner_id: Optional owner id filter.
    """
    period = Granularity.parse(granularity)
    start = parse_date(start_date)
    end = parse_date(end_date) if end_date else None

    deals = fetch_deals(
        client,
        start,
        end,
        pipeline=pipeline,
        deal_stage=deal_stage,
        owner_id=owner_id,
    )

    return SalesAnalyticsReport(
        start_date=format_date(start),
        end_date=format_date(end or datetime.now(timezone.utc)),
        period=period.value,
        analytics=aggregate_deals_by_period(deals, period),
    )
