"""Tests for paginated deal retrieval."""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from crm_analytics.errors import FetchError
from crm_analytics.fetcher import build_deal_filter_groups, fetch_deals, fetch_open_deals
from crm_analytics.hubspot_client import HubSpotClient
from crm_analytics.models import SearchPage

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 2, 1, tzinfo=timezone.utc)


def _item(deal_id: str, stage: str = "qualifiedtobuy") -> dict:
    return {"id": deal_id, "properties": {"createdate": "2024-01-10T00:00:00Z", "dealstage": stage}}


def test_build_deal_filter_groups_without_additional_filters_has_one_group():
    """Verify the attribute filter group is omitted when no attribute filter is given."""
    filter_groups = build_deal_filter_groups(START)

    assert filter_groups == [
        {"filters": [{"propertyName": "createdate", "operator": "GTE", "value": "1704067200000"}]}
    ]


def test_build_deal_filter_groups_with_end_and_attribute_filters():
    """Verify the date group gains an upper bound and attribute filters form a second group."""
    filter_groups = build_deal_filter_groups(START, END, pipeline="default", owner_id="7")

    assert filter_groups[0]["filters"][1] == {
        "propertyName": "createdate",
        "operator": "LTE",
        "value": "1706745600000",
    }
    assert filter_groups[1] == {
        "filters": [
            {"propertyName": "pipeline", "operator": "EQ", "value": "default"},
            {"propertyName": "hubspot_owner_id", "operator": "EQ", "value": "7"},
        ]
    }


def test_fetch_deals_follows_cursor_until_exhausted():
    """Verify pages are requested in order, each with the previous page's cursor."""
    client = Mock()
    client.search.side_effect = [
        SearchPage(results=[_item(str(i)) for i in range(100)], next_after="100"),
        SearchPage(results=[_item("100"), _item("101")], next_after="opaque-cursor"),
        SearchPage(results=[_item("102")], next_after=None),
    ]

    deals = fetch_deals(client, START, END, deal_stage="qualifiedtobuy")

    assert len(deals) == 103
    assert deals[0].id == "0"
    assert deals[-1].id == "102"
    assert [call.kwargs["after"] for call in client.search.call_args_list] == [None, "100", "opaque-cursor"]
    first_call = client.search.call_args_list[0]
    assert first_call.args[0] == "deals"
    assert first_call.kwargs["limit"] == HubSpotClient.MAX_PAGE_SIZE
    assert first_call.kwargs["sorts"] == ["createdate"]
    assert "hubspot_owner_id" in first_call.kwargs["properties"]


def test_fetch_deals_error_on_later_page_aborts_fetch():
    """Verify a failure on any page propagates instead of returning a partial result."""
    client = Mock()
    client.search.side_effect = [
        SearchPage(results=[_item("1")], next_after="1"),
        FetchError("HubSpot API request failed"),
    ]

    with pytest.raises(FetchError):
        fetch_deals(client, START)

    assert client.search.call_count == 2


def test_fetch_deals_without_matches_returns_empty_list():
    """Verify no matching deals return an empty list rather than an error."""
    client = Mock()
    client.search.return_value = SearchPage(results=[], next_after=None)

    assert fetch_deals(client, START) == []


def test_fetch_open_deals_drops_closed_stages():
    """Verify deals in closed stages are excluded from the open pipeline."""
    client = Mock()
    client.search.return_value = SearchPage(
        results=[_item("1"), _item("2", "closedwon"), _item("3", "closedlost"), _item("4", "contractsent")],
        next_after=None,
    )

    deals = fetch_open_deals(client)

    assert [deal.id for deal in deals] == ["1", "4"]
    assert client.search.call_args.args[1] == []
    assert client.search.call_args.kwargs["sorts"] == ["amount"]
