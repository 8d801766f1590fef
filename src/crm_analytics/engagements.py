"""Engagement (call, email, meeting, task, note) lookup for a single deal."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .errors import CrmAnalyticsError, DataValidationError
from .hubspot_client import HubSpotClient
from .models import EngagementReport
from .periods import EPOCH, parse_timestamp

logger = logging.getLogger(__name__)

ENGAGEMENT_OBJECT_TYPES = {
    "CALL": "calls",
    "EMAIL": "emails",
    "MEETING": "meetings",
    "TASK": "tasks",
    "NOTE": "notes",
}

_COMMON_PROPERTIES = ["hs_createdate", "hs_lastmodifieddate"]

ENGAGEMENT_PROPERTIES = {
    "calls": ["hs_call_body", "hs_call_direction", "hs_call_disposition", "hs_call_duration"],
    "emails": ["hs_email_subject", "hs_email_text", "hs_email_direction", "hs_email_status"],
    "meetings": [
        "hs_meeting_title",
        "hs_meeting_body",
        "hs_meeting_start_time",
        "hs_meeting_end_time",
    ],
    "tasks": ["hs_task_body", "hs_task_priority", "hs_task_status", "hs_task_subject"],
    "notes": ["hs_note_body"],
}


def resolve_engagement_types(types: Optional[Sequence[str]] = None) -> List[str]:
    """Map engagement type names to object types; all types when none are given."""
    if not types:
        return list(ENGAGEMENT_OBJECT_TYPES.values())

    object_types = []
    for name in types:
        object_type = ENGAGEMENT_OBJECT_TYPES.get(name.strip().upper())
        if object_type is None:
            choices = ", ".join(ENGAGEMENT_OBJECT_TYPES)
            raise DataValidationError(
                f"Invalid engagement type '{name}': expected one of {choices}."
            )
        object_types.append(object_type)
    return object_types


def _created_at(engagement: Dict[str, Any]) -> datetime:
    properties = engagement.get("properties") or {}
    return parse_timestamp(properties.get("hs_createdate")) or EPOCH


def get_engagements_by_deal(
    client: HubSpotClient,
    deal_id: str,
    types: Optional[Sequence[str]] = None,
    limit: int = 20,
) -> EngagementReport:
    """Collect a deal's engagements across categories, newest first.

    One search is issued per category. A category whose search fails is
    logged and skipped. Results from all categories are merged and sorted
    before being truncated to ``limit``.

    Raises:
        FetchError: If the deal itself cannot be fetched.
        AuthenticationError: If the deal lookup is rejected.
    """
    object_types = resolve_engagement_types(types)
    client.get_by_id("deals", deal_id, ["dealname"])

    filter_groups = [
        {
            "filters": [
                {"propertyName": "hs_attachment_ids", "operator": "CONTAINS_TOKEN", "value": deal_id}
            ]
        }
    ]

    engagements: List[Dict[str, Any]] = []
    for object_type in object_types:
        try:
            page = client.search(
                object_type,
                filter_groups,
                sorts=["hs_createdate"],
                properties=_COMMON_PROPERTIES + ENGAGEMENT_PROPERTIES[object_type],
                limit=limit,
            )
        except CrmAnalyticsError as exc:
            logger.warning(
                "Engagement search failed; skipping category",
                extra={"deal_id": deal_id, "engagement_type": object_type, "error": str(exc)},
            )
            continue

        for result in page.results:
            engagements.append({**result, "engagementType": object_type})

    engagements.sort(key=_created_at, reverse=True)

    return EngagementReport(results=engagements[:limit], total_count=len(engagements))
