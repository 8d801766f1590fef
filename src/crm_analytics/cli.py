"""Command-line argument parsing for the HubSpot CRM analytics tool."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence, Tuple

from .engagements import ENGAGEMENT_OBJECT_TYPES
from .errors import DataValidationError
from .periods import FORECAST_GRANULARITIES, Granularity, parse_date

PERIOD_CHOICES = [item.value for item in Granularity]
FORECAST_PERIOD_CHOICES = [item.value for item in FORECAST_GRANULARITIES]
LOG_LEVEL_CHOICES = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def _calendar_date(value: str) -> str:
    """Validate a ``YYYY-MM-DD`` date and return it unchanged."""
    try:
        parse_date(value)
    except DataValidationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc
    return value


def _property_assignment(value: str) -> Tuple[str, str]:
    """Parse a ``key=value`` record property.

    Raises:
        argparse.ArgumentTypeError: If the key is missing.
    """
    key, separator, property_value = value.partition("=")
    key = key.strip()
    if not separator or not key:
        raise argparse.ArgumentTypeError("must be formatted as key=value")
    return key, property_value


def _add_properties(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--property",
        dest="properties",
        action="append",
        type=_property_assignment,
        required=True,
        help="Record property as key=value (repeatable).",
    )


def _add_date_range(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--start-date",
        required=True,
        type=_calendar_date,
        help="Start of the deal creation window (YYYY-MM-DD).",
    )
    parser.add_argument(
        "--end-date",
        type=_calendar_date,
        default=None,
        help="End of the deal creation window (YYYY-MM-DD); defaults to now.",
    )


def _add_period(parser: argparse.ArgumentParser, choices: Sequence[str]) -> None:
    parser.add_argument(
        "--period",
        required=True,
        choices=list(choices),
        help="Time granularity for aggregation.",
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for CRM record and analytics commands.

    Returns:
        Parsed arguments; ``command`` names the selected subcommand.
    """
    parser = argparse.ArgumentParser(
        prog="hubspot-crm-analytics",
        description=(
            "Query HubSpot CRM records and derive sales analytics "
            "(period aggregation, owner performance, pipeline stages, forecast)."
        ),
    )
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVEL_CHOICES,
        default="WARNING",
        help="Logging verbosity written to stderr (default: WARNING).",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_int,
        default=30,
        help="Per-request timeout in seconds (default: 30).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sales = subparsers.add_parser("sales-analytics", help="Deal statistics per period.")
    _add_period(sales, PERIOD_CHOICES)
    _add_date_range(sales)
    sales.add_argument("--pipeline", help="Pipeline ID to filter by.")
    sales.add_argument("--deal-stage", help="Deal stage ID to filter by.")
    sales.add_argument("--owner-id", help="Deal owner ID to filter by.")

    performance = subparsers.add_parser("sales-performance", help="Per-owner performance.")
    _add_period(performance, PERIOD_CHOICES)
    _add_date_range(performance)
    performance.add_argument(
        "--owner-id",
        dest="owner_ids",
        action="append",
        default=[],
        help="Owner ID to include (repeatable); all owners when omitted.",
    )
    performance.add_argument("--pipeline", help="Pipeline ID to filter by.")

    pipeline = subparsers.add_parser("pipeline-analytics", help="Stage totals and conversion.")
    pipeline.add_argument("--pipeline-id", required=True, help="Pipeline ID to analyze.")
    _add_period(pipeline, PERIOD_CHOICES)
    _add_date_range(pipeline)

    forecast = subparsers.add_parser("forecast", help="Revenue forecast for future periods.")
    _add_period(forecast, FORECAST_PERIOD_CHOICES)
    forecast.add_argument(
        "--periods",
        type=_positive_int,
        default=3,
        help="Number of future periods to forecast (default: 3).",
    )
    forecast.add_argument("--pipeline", help="Pipeline ID to filter by.")

    engagements = subparsers.add_parser("deal-engagements", help="Engagements for a deal.")
    engagements.add_argument("--deal-id", required=True, help="Deal ID.")
    engagements.add_argument(
        "--type",
        dest="types",
        action="append",
        choices=list(ENGAGEMENT_OBJECT_TYPES),
        default=[],
        help="Engagement type to include (repeatable); all types when omitted.",
    )
    engagements.add_argument("--limit", type=_positive_int, default=20, help="Maximum results.")

    contacts = subparsers.add_parser("search-contacts", help="Search contacts by email.")
    contacts.add_argument("--query", required=True, help="Email token to search for.")
    contacts.add_argument("--count", type=_positive_int, default=10, help="Maximum results.")

    contact = subparsers.add_parser("get-contact", help="Fetch a contact by ID.")
    contact.add_argument("--contact-id", required=True, help="Contact ID.")

    create_contact = subparsers.add_parser("create-contact", help="Create a contact.")
    _add_properties(create_contact)

    update_contact = subparsers.add_parser("update-contact", help="Update a contact.")
    update_contact.add_argument("--contact-id", required=True, help="Contact ID.")
    _add_properties(update_contact)

    deal = subparsers.add_parser("get-deal", help="Fetch a deal by ID.")
    deal.add_argument("--deal-id", required=True, help="Deal ID.")

    create_deal = subparsers.add_parser("create-deal", help="Create a deal.")
    _add_properties(create_deal)

    update_deal = subparsers.add_parser("update-deal", help="Update a deal.")
    update_deal.add_argument("--deal-id", required=True, help="Deal ID.")
    _add_properties(update_deal)

    history = subparsers.add_parser("deal-history", help="Last modification of a deal.")
    history.add_argument("--deal-id", required=True, help="Deal ID.")

    notes = subparsers.add_parser("deal-notes", help="Notes attached to a deal.")
    notes.add_argument("--deal-id", required=True, help="Deal ID.")
    notes.add_argument("--limit", type=_positive_int, default=20, help="Maximum results.")
    notes.add_argument("--after", default=None, help="Paging cursor from a previous page.")

    company = subparsers.add_parser("get-company", help="Fetch a company by ID.")
    company.add_argument("--company-id", required=True, help="Company ID.")

    for name, help_text in (("list-deals", "List deals."), ("list-companies", "List companies.")):
        listing = subparsers.add_parser(name, help=help_text)
        listing.add_argument("--limit", type=_positive_int, default=10, help="Page size.")
        listing.add_argument("--after", default=None, help="Paging cursor from a previous page.")

    return parser.parse_args(argv)
