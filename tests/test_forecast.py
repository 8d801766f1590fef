"""Tests for revenue forecasting."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from crm_analytics.errors import DataValidationError
from crm_analytics.forecast import generate_forecast, get_forecast_analytics, lookback_start
from crm_analytics.models import Deal, PeriodAnalytics, SearchPage
from crm_analytics.periods import Granularity, to_epoch_millis

NOW = datetime(2024, 11, 15, 13, 0, tzinfo=timezone.utc)


def _history(period: str, total_deals: int, total_amount: float, win_rate: float) -> PeriodAnalytics:
    return PeriodAnalytics(
        period=period,
        total_deals=total_deals,
        total_amount=total_amount,
        won_deals=0,
        lost_deals=0,
        open_deals=total_deals,
        win_rate=win_rate,
        average_deal_size=total_amount / total_deals if total_deals else 0.0,
    )


def _open_deal(deal_id: str, closed=None, amount=None, probability=None) -> Deal:
    properties = {"dealstage": "contractsent"}
    if closed is not None:
        properties["closedate"] = closed
    if amount is not None:
        properties["amount"] = str(amount)
    if probability is not None:
        properties["hs_probability"] = str(probability)
    return Deal(id=deal_id, properties=properties)


@pytest.mark.parametrize("granularity", ["monthly", "quarterly", "yearly"])
def test_generate_forecast_without_data_is_zero_with_confidence_bands(granularity):
    """Verify empty history and pipeline forecast zero with High, Medium, then Low confidence."""
    forecast = generate_forecast([], [], granularity, 5, now=NOW)

    assert [entry.forecasted_revenue for entry in forecast] == [0] * 5
    assert [entry.forecasted_deals for entry in forecast] == [0] * 5
    assert [entry.confidence for entry in forecast] == ["High", "Medium", "Low", "Low", "Low"]


def test_generate_forecast_monthly_periods_start_at_current_month():
    """Verify monthly forecast keys and labels begin with the current month."""
    forecast = generate_forecast([], [], Granularity.MONTHLY, 3, now=NOW)

    assert [entry.period for entry in forecast] == ["2024-11", "2024-12", "2025-01"]
    assert [entry.label for entry in forecast] == ["November 2024", "December 2024", "January 2025"]


def test_generate_forecast_quarterly_and_yearly_keys():
    """Verify quarterly and yearly forecasts advance by whole periods."""
    quarterly = generate_forecast([], [], "quarterly", 2, now=NOW)
    yearly = generate_forecast([], [], "yearly", 2, now=NOW)

    assert [(entry.period, entry.label) for entry in quarterly] == [("2024-Q4", "Q4 2024"), ("2025-Q1", "Q1 2025")]
    assert [entry.period for entry in yearly] == ["2024", "2025"]


def test_generate_forecast_blends_history_and_open_pipeline():
    """Verify the 0.7/0.3 blend of historical averages and probability-weighted open deals."""
    historical = [
        _history("2024-08", 4, 1000, 0.5),
        _history("2024-09", 2, 3000, 0.25),
    ]
    open_deals = [
        _open_deal("1", "2024-11-20T00:00:00Z", 1000, probability=40),
        _open_deal("2", "2024-11-25T00:00:00Z", 2000),
        _open_deal("3", "2024-12-05T00:00:00Z", 800, probability=50),
        _open_deal("4", None, 5000, probability=90),
        _open_deal("5", "2024-11-28T00:00:00Z"),
    ]

    november, december = generate_forecast(historical, open_deals, "monthly", 2, now=NOW)

    # 1000 * 0.40 + 2000 * avg win rate 0.375
    assert november.forecasted_revenue == pytest.approx(0.7 * 2000 + 0.3 * 1150)
    assert november.forecasted_deals == 3
    assert november.open_deals_count == 3
    assert november.open_deals_value == 3000
    assert november.historical_avg_revenue == 2000
    assert november.confidence == "High"

    assert december.forecasted_revenue == pytest.approx(0.7 * 2000 + 0.3 * 400)
    assert december.forecasted_deals == 2
    assert december.open_deals_count == 1
    assert december.confidence == "Medium"


def test_generate_forecast_zero_probability_is_not_replaced_by_win_rate():
    """Verify a stated probability of 0 is used as-is."""
    historical = [_history("2024-10", 1, 0, 1.0)]
    open_deals = [_open_deal("1", "2024-11-20T00:00:00Z", 1000, probability=0)]

    (november,) = generate_forecast(historical, open_deals, "monthly", 1, now=NOW)

    assert november.forecasted_revenue == 0


def test_generate_forecast_rejects_daily_and_weekly():
    """Verify forecasting is limited to monthly, quarterly and yearly periods."""
    with pytest.raises(DataValidationError):
        generate_forecast([], [], "daily", 3, now=NOW)
    with pytest.raises(DataValidationError):
        generate_forecast([], [], Granularity.WEEKLY, 3, now=NOW)


def test_lookback_start_covers_three_times_the_horizon():
    """Verify the historical window spans three times the forecast horizon."""
    assert lookback_start(NOW, Granularity.MONTHLY, 3) == datetime(2024, 2, 15, 13, 0, tzinfo=timezone.utc)
    assert lookback_start(NOW, Granularity.QUARTERLY, 1) == datetime(2024, 2, 15, 13, 0, tzinfo=timezone.utc)
    assert lookback_start(NOW, Granularity.YEARLY, 2) == datetime(2018, 11, 15, 13, 0, tzinfo=timezone.utc)


def test_get_forecast_analytics_fetches_history_then_open_deals():
    """Verify the entry point queries history, then open deals, and forecasts from both."""
    client = Mock()
    client.search.side_effect = [
        SearchPage(
            results=[
                {
                    "id": "h1",
                    "properties": {
                        "createdate": "2024-09-10T00:00:00Z",
                        "dealstage": "closedwon",
                        "amount": "900",
                    },
                }
            ],
            next_after=None,
        ),
        SearchPage(
            results=[
                {"id": "o1", "properties": {"dealstage": "contractsent", "closedate": "2024-11-30T00:00:00Z", "amount": "1000"}},
                {"id": "o2", "properties": {"dealstage": "closedwon", "closedate": "2024-11-30T00:00:00Z", "amount": "7000"}},
            ],
            next_after=None,
        ),
    ]

    report = get_forecast_analytics(client, "monthly", periods=2, pipeline="sales", now=NOW)

    payload = report.to_dict()
    assert payload["period"] == "monthly"
    assert payload["numberOfPeriods"] == 2
    assert [entry["period"] for entry in payload["historicalData"]] == ["2024-09"]
    assert payload["forecast"][0]["forecastedRevenue"] == pytest.approx(0.7 * 900 + 0.3 * 1000)
    assert payload["forecast"][0]["openDealsCount"] == 1
    assert payload["forecast"][1]["forecastedRevenue"] == pytest.approx(0.7 * 900)
    assert payload["forecast"][1]["forecastedDeals"] == 1

    history_call, open_call = client.search.call_args_list
    date_filters = history_call.args[1][0]["filters"]
    assert date_filters[0]["value"] == str(to_epoch_millis(datetime(2024, 5, 15, 13, 0, tzinfo=timezone.utc)))
    assert date_filters[1]["value"] == str(to_epoch_millis(NOW))
    assert open_call.args[1] == [
        {"filters": [{"propertyName": "pipeline", "operator": "EQ", "value": "sales"}]}
    ]
    assert "hs_probability" in open_call.kwargs["properties"]


def test_get_forecast_analytics_rejects_non_positive_horizon():
    """Verify a horizon of zero periods is rejected before fetching."""
    client = Mock()

    with pytest.raises(DataValidationError):
        get_forecast_analytics(client, "monthly", periods=0, now=NOW)

    client.search.assert_not_called()
