"""Pipeline stage analytics: per-stage totals, conversion and dwell time."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from .errors import SchemaError
from .fetcher import fetch_deals
from .hubspot_client import HubSpotClient
from .models import Deal, PipelineAnalyticsReport, PipelineStage, StageSnapshot
from .periods import Granularity, format_date, parse_date

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = timedelta(days=1).total_seconds()


def days_open(deal: Deal, now: datetime) -> Optional[int]:
    """Whole days, rounded up, from creation to close (or ``now`` while still open).

    HubSpot does not expose per-stage transition times, so the deal's whole
    lifetime stands in for its time in the current stage.
    """
    created_at = deal.created_at
    if created_at is None:
        return None
    closed_at = deal.closed_at or now
    return math.ceil((closed_at - created_at).total_seconds() / _SECONDS_PER_DAY)


def conversion_rate(current_count: int, previous_count: int) -> float:
    return current_count / previous_count if previous_count > 0 else 0.0


def build_stage_snapshots(
    stages: List[PipelineStage],
    deals: List[Deal],
    now: datetime,
) -> List[StageSnapshot]:
    """Assign deals to their current stage and summarize each stage.

    Deals whose stage is not part of ``stages`` are ignored. The first stage
    by display order has a conversion rate of 0.
    """
    ordered_stages = sorted(stages, key=lambda stage: stage.display_order)
    deals_by_stage: Dict[str, List[Deal]] = {stage.id: [] for stage in ordered_stages}

    unmatched = 0
    for deal in deals:
        stage_deals = deals_by_stage.get(deal.stage or "")
        if stage_deals is None:
            unmatched += 1
            continue
        stage_deals.append(deal)

    if unmatched:
        logger.debug("Ignored deals in unknown stages", extra={"deals": unmatched})

    snapshots: List[StageSnapshot] = []
    previous_count: Optional[int] = None

    for stage in ordered_stages:
        stage_deals = deals_by_stage[stage.id]
        durations = [days for days in (days_open(deal, now) for deal in stage_deals) if days is not None]

        snapshots.append(
            StageSnapshot(
                id=stage.id,
                label=stage.label,
                display_order=stage.display_order,
                total_deals=len(stage_deals),
                total_value=sum(deal.amount or 0.0 for deal in stage_deals),
                conversion_rate=(
                    0.0 if previous_count is None else conversion_rate(len(stage_deals), previous_count)
                ),
                average_days_in_stage=sum(durations) / len(durations) if durations else 0.0,
            )
        )
        previous_count = len(stage_deals)

    return snapshots


def get_pipeline_analytics(
    client: HubSpotClient,
    pipeline_id: str,
    granularity: str,
    start_date: str,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PipelineAnalyticsReport:
    """Analyze the stages of one deal pipeline over a creation-date range.

    The pipeline schema is fetched before any deal search.

    Raises:
        SchemaError: If the pipeline has no stages.
        FetchError: If the pipeline schema or any deal page cannot be fetched.
    """
    period = Granularity.parse(granularity)
    start = parse_date(start_date)
    end = parse_date(end_date) if end_date else None
    now = now or datetime.now(timezone.utc)

    pipeline = client.get_pipeline("deals", pipeline_id)
    if not pipeline.stages:
        raise SchemaError(f"Pipeline {pipeline_id} not found or has no stages")

    deals = fetch_deals(client, start, end, pipeline=pipeline_id)

    return PipelineAnalyticsReport(
        pipeline_id=pipeline_id,
        pipeline_name=pipeline.label,
        start_date=format_date(start),
        end_date=format_date(end or now),
        period=period.value,
        stages=build_stage_snapshots(pipeline.stages, deals, now),
    )
