"""Domain models for HubSpot CRM analytics.

Deal records model only the subset of HubSpot properties the analytics need.
Result objects are frozen and expose ``to_dict`` with the camelCase keys
callers serialize to JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .periods import parse_timestamp


class DealStatus(str, Enum):
    """Outcome of a deal as encoded in its stage identifier."""

    WON = "won"
    LOST = "lost"
    OPEN = "open"


def _parse_number(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True, slots=True)
class Deal:
    """Represents one deal record returned by the HubSpot search API."""

    id: str
    properties: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "Deal":
        properties = item.get("properties") or {}
        return cls(
            id=str(item.get("id", "")),
            properties={
                str(key): None if value is None else str(value)
                for key, value in properties.items()
            },
        )

    @property
    def amount(self) -> Optional[float]:
        return _parse_number(self.properties.get("amount"))

    @property
    def probability(self) -> Optional[float]:
        """Stated close probability as a fraction, from the 0-100 ``hs_probability``."""
        percentage = _parse_number(self.properties.get("hs_probability"))
        if percentage is None:
            return None
        return percentage / 100

    @property
    def stage(self) -> Optional[str]:
        return self.properties.get("dealstage") or None

    @property
    def owner_id(self) -> Optional[str]:
        return self.properties.get("hubspot_owner_id") or None

    @property
    def created_at(self) -> Optional[datetime]:
        return parse_timestamp(self.properties.get("createdate"))

    @property
    def closed_at(self) -> Optional[datetime]:
        return parse_timestamp(self.properties.get("closedate"))


@dataclass(frozen=True, slots=True)
class SearchPage:
    """One page of search results plus the cursor for the next page, if any."""

    results: List[Dict[str, Any]]
    next_after: Optional[str]


@dataclass(frozen=True, slots=True)
class PipelineStage:
    """Represents a stage definition within a HubSpot pipeline."""

    id: str
    label: str
    display_order: int


@dataclass(frozen=True, slots=True)
class Pipeline:
    """Represents a pipeline schema with its ordered stages."""

    id: str
    label: str
    stages: List[PipelineStage]


@dataclass(frozen=True, slots=True)
class OwnerIdentity:
    """Identity of a deal owner; only ``id`` is set when the lookup failed."""

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id}
        if self.first_name is not None:
            payload["firstName"] = self.first_name
        if self.last_name is not None:
            payload["lastName"] = self.last_name
        if self.email is not None:
            payload["email"] = self.email
        return payload


@dataclass(frozen=True, slots=True)
class PeriodAnalytics:
    """Aggregated deal statistics for a single period bucket."""

    period: str
    total_deals: int
    total_amount: float
    won_deals: int
    lost_deals: int
    open_deals: int
    win_rate: float
    average_deal_size: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "totalDeals": self.total_deals,
            "totalAmount": self.total_amount,
            "wonDeals": self.won_deals,
            "lostDeals": self.lost_deals,
            "openDeals": self.open_deals,
            "winRate": self.win_rate,
            "averageDealSize": self.average_deal_size,
        }


@dataclass(frozen=True, slots=True)
class OwnerPerformance:
    """Performance metrics for one deal owner over the queried range."""

    owner: OwnerIdentity
    total_deals: int
    total_won: int
    total_lost: int
    total_open: int
    total_revenue: float
    average_deal_size: float
    win_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner.to_dict(),
            "totalDeals": self.total_deals,
            "totalWon": self.total_won,
            "totalLost": self.total_lost,
            "totalOpen": self.total_open,
            "totalRevenue": self.total_revenue,
            "averageDealSize": self.average_deal_size,
            "winRate": self.win_rate,
        }


@dataclass(frozen=True, slots=True)
class StageSnapshot:
    """Deal totals and derived rates for one pipeline stage."""

    id: str
    label: str
    display_order: int
    total_deals: int
    total_value: float
    conversion_rate: float
    average_days_in_stage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "displayOrder": self.display_order,
            "totalDeals": self.total_deals,
            "totalValue": self.total_value,
            "conversionRate": self.conversion_rate,
            "averageDaysInStage": self.average_days_in_stage,
        }


@dataclass(frozen=True, slots=True)
class ForecastPeriod:
    """Projected revenue and deal count for one future period."""

    period: str
    label: str
    forecasted_revenue: float
    forecasted_deals: int
    open_deals_count: int
    open_deals_value: float
    historical_avg_revenue: float
    confidence: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "label": self.label,
            "forecastedRevenue": self.forecasted_revenue,
            "forecastedDeals": self.forecasted_deals,
            "openDealsCount": self.open_deals_count,
            "openDealsValue": self.open_deals_value,
            "historicalAvgRevenue": self.historical_avg_revenue,
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class SalesAnalyticsReport:
    start_date: str
    end_date: str
    period: str
    analytics: List[PeriodAnalytics]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "period": self.period,
            "analytics": [entry.to_dict() for entry in self.analytics],
        }


@dataclass(frozen=True, slots=True)
class SalesPerformanceReport:
    start_date: str
    end_date: str
    period: str
    performance: List[OwnerPerformance]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": self.start_date,
            "endDate": self.end_date,
            "period": self.period,
            "performance": [entry.to_dict() for entry in self.performance],
        }


@dataclass(frozen=True, slots=True)
class PipelineAnalyticsReport:
    pipeline_id: str
    pipeline_name: str
    start_date: str
    end_date: str
    period: str
    stages: List[StageSnapshot]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipelineId": self.pipeline_id,
            "pipelineName": self.pipeline_name,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "period": self.period,
            "stages": [stage.to_dict() for stage in self.stages],
        }


@dataclass(frozen=True, slots=True)
class ForecastReport:
    period: str
    number_of_periods: int
    historical_data: List[PeriodAnalytics]
    forecast: List[ForecastPeriod]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "numberOfPeriods": self.number_of_periods,
            "historicalData": [entry.to_dict() for entry in self.historical_data],
            "forecast": [entry.to_dict() for entry in self.forecast],
        }


@dataclass(frozen=True, slots=True)
class EngagementReport:
    """Merged engagements for a deal; ``total_count`` is counted before truncation."""

    results: List[Dict[str, Any]]
    total_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"results": self.results, "totalCount": self.total_count}
