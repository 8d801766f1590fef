"""Revenue forecasting from historical averages and the open pipeline.

Each projected period blends the historical per-period average (weight 0.7)
with the probability-weighted value of open deals expected to close in that
period (weight 0.3). Confidence depends only on distance from the present.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

from .aggregation import aggregate_deals_by_period
from .errors import DataValidationError
from .fetcher import fetch_deals, fetch_open_deals
from .hubspot_client import HubSpotClient
from .models import Deal, ForecastPeriod, ForecastReport, PeriodAnalytics
from .periods import (
    FORECAST_GRANULARITIES,
    Granularity,
    advance_period,
    period_key,
    period_label,
    period_start,
)

logger = logging.getLogger(__name__)

HISTORICAL_WEIGHT = 0.7
PIPELINE_WEIGHT = 0.3
LOOKBACK_MULTIPLIER = 3
CONFIDENCE_BANDS = ("High", "Medium")
DEFAULT_CONFIDENCE = "Low"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def forecast_granularity(value: "str | Granularity") -> Granularity:
    """Parse a forecast period, which must be monthly, quarterly or yearly."""
    granularity = Granularity.parse(value)
    if granularity not in FORECAST_GRANULARITIES:
        choices = ", ".join(item.value for item in FORECAST_GRANULARITIES)
        raise DataValidationError(
            f"Invalid forecast period '{granularity.value}': expected one of {choices}."
        )
    return granularity


def lookback_start(now: datetime, granularity: Granularity, periods: int) -> datetime:
    """Return the start of the historical window: ``3 × periods`` periods before ``now``."""
    return advance_period(now, granularity, -LOOKBACK_MULTIPLIER * periods)


def confidence_for(index: int) -> str:
    if index < len(CONFIDENCE_BANDS):
        return CONFIDENCE_BANDS[index]
    return DEFAULT_CONFIDENCE


def generate_forecast(
    historical: Sequence[PeriodAnalytics],
    open_deals: Sequence[Deal],
    granularity: "str | Granularity",
    periods: int,
    now: Optional[datetime] = None,
) -> List[ForecastPeriod]:
    """Project revenue and deal counts for ``periods`` periods starting with the current one."""
    granularity = forecast_granularity(granularity)
    now = now or datetime.now(timezone.utc)

    observed = len(historical)
    avg_revenue = sum(entry.total_amount for entry in historical) / observed if observed else 0.0
    avg_deals = sum(entry.total_deals for entry in historical) / observed if observed else 0.0
    avg_win_rate = sum(entry.win_rate for entry in historical) / observed if observed else 0.0

    deals_by_close_period: Dict[str, List[Deal]] = {}
    for deal in open_deals:
        closed_at = deal.closed_at
        if closed_at is None:
            continue
        deals_by_close_period.setdefault(period_key(closed_at, granularity), []).append(deal)

    forecast: List[ForecastPeriod] = []
    current = period_start(now, granularity)

    for index in range(periods):
        key = period_key(current, granularity)
        period_deals = deals_by_close_period.get(key, [])

        expected_revenue = 0.0
        for deal in period_deals:
            amount = deal.amount
            if amount is None:
                continue
            probability = deal.probability
            expected_revenue += amount * (avg_win_rate if probability is None else probability)

        forecast.append(
            ForecastPeriod(
                period=key,
                label=period_label(current, granularity),
                forecasted_revenue=HISTORICAL_WEIGHT * avg_revenue + PIPELINE_WEIGHT * expected_revenue,
                forecasted_deals=_round_half_up(
                    HISTORICAL_WEIGHT * avg_deals + PIPELINE_WEIGHT * len(period_deals)
                ),
                open_deals_count=len(period_deals),
                open_deals_value=sum(deal.amount or 0.0 for deal in period_deals),
                historical_avg_revenue=avg_revenue,
                confidence=confidence_for(index),
            )
        )
        current = advance_period(current, granularity)

    return forecast


def get_forecast_analytics(
    client: HubSpotClient,
    granularity: str,
    periods: int = 3,
    pipeline: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ForecastReport:
    """Forecast the next ``periods`` periods for the whole portal or one pipeline.

    Historical deals come from a window of ``3 × periods`` periods ending now;
    open deals are fetched separately.
    """
    period = forecast_granularity(granularity)
    if periods <= 0:
        raise DataValidationError(
            "Invalid value for 'periods': expected an integer greater than 0."
        )
    now = now or datetime.now(timezone.utc)

    start = lookback_start(now, period, periods)
    historical_deals = fetch_deals(client, start, now, pipeline=pipeline)
    historical = aggregate_deals_by_period(historical_deals, period)

    open_deals = fetch_open_deals(client, pipeline=pipeline)

    logger.info(
        "Generating forecast",
        extra={
            "period": period.value,
            "periods": periods,
            "historical_periods": len(historical),
            "open_deals": len(open_deals),
        },
    )

    return ForecastReport(
        period=period.value,
        number_of_periods=periods,
        historical_data=historical,
        forecast=generate_forecast(historical, open_deals, period, periods, now),
    )
