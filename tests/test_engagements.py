"""Tests for merged engagement lookup."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from crm_analytics.engagements import get_engagements_by_deal
from crm_analytics.errors import AuthenticationError, DataValidationError, FetchError
from crm_analytics.models import SearchPage


def _engagement(engagement_id: str, created: str) -> dict:
    return {"id": engagement_id, "properties": {"hs_createdate": created}}


def _search_by_type(pages):
    def _search(object_type, filter_groups, **kwargs):
        result = pages[object_type]
        if isinstance(result, Exception):
            raise result
        return SearchPage(results=result, next_after=None)

    return _search


def test_get_engagements_merges_sorts_then_truncates():
    """Verify all categories are merged and sorted newest first before truncation."""
    client = Mock()
    client.search.side_effect = _search_by_type(
        {
            "calls": [_engagement("c1", "2024-01-01T00:00:00Z"), _engagement("c2", "2024-03-01T00:00:00Z")],
            "emails": FetchError("emails unavailable"),
            "meetings": [_engagement("m1", "2024-02-01T00:00:00Z")],
            "tasks": [],
            "notes": [_engagement("n1", "2024-04-01T00:00:00Z")],
        }
    )

    report = get_engagements_by_deal(client, "d1", limit=2)

    assert [item["id"] for item in report.results] == ["n1", "c2"]
    assert [item["engagementType"] for item in report.results] == ["notes", "calls"]
    assert report.total_count == 4
    assert report.to_dict()["totalCount"] == 4
    client.get_by_id.assert_called_once_with("deals", "d1", ["dealname"])
    assert [call.args[0] for call in client.search.call_args_list] == [
        "calls",
        "emails",
        "meetings",
        "tasks",
        "notes",
    ]


def test_get_engagements_limits_categories_to_requested_types():
    """Verify only the requested categories are searched, with their specific properties."""
    client = Mock()
    client.search.return_value = SearchPage(results=[], next_after=None)

    get_engagements_by_deal(client, "d1", types=["MEETING", "note"])

    assert [call.args[0] for call in client.search.call_args_list] == ["meetings", "notes"]
    meeting_properties = client.search.call_args_list[0].kwargs["properties"]
    assert "hs_meeting_title" in meeting_properties
    assert "hs_createdate" in meeting_properties


def test_get_engagements_rejects_unknown_type():
    """Verify unknown engagement types raise DataValidationError."""
    with pytest.raises(DataValidationError):
        get_engagements_by_deal(Mock(), "d1", types=["SMS"])


def test_get_engagements_missing_deal_propagates_fetch_error():
    """Verify an unknown deal fails the whole lookup."""
    client = Mock()
    client.get_by_id.side_effect = FetchError("deal not found")

    with pytest.raises(FetchError):
        get_engagements_by_deal(client, "missing")

    client.search.assert_not_called()


def test_get_engagements_skips_category_rejected_for_scope():
    """Verify a category rejected with AuthenticationError is skipped and the rest still merge."""
    client = Mock()
    client.search.side_effect = _search_by_type(
        {
            "calls": AuthenticationError("calls/search returned 403"),
            "emails": [_engagement("e1", "2024-01-01T00:00:00Z")],
            "meetings": [_engagement("m1", "2024-02-01T00:00:00Z")],
            "tasks": [_engagement("t1", "2024-03-01T00:00:00Z")],
            "notes": [_engagement("n1", "2024-04-01T00:00:00Z")],
        }
    )

    report = get_engagements_by_deal(client, "d1")

    assert report.total_count == 4
    assert [item["id"] for item in report.results] == ["n1", "t1", "m1", "e1"]


def test_get_engagements_rejected_deal_lookup_is_fatal():
    """Verify a rejected deal lookup propagates before any category search."""
    client = Mock()
    client.get_by_id.side_effect = AuthenticationError("deals returned 403")

    with pytest.raises(AuthenticationError):
        get_engagements_by_deal(client, "d1")

    client.search.assert_not_called()
