"""Entry point: parse arguments, run the selected command and print JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional, Sequence

from .aggregation import get_sales_analytics
from .cli import parse_args
from .config import load_config
from .engagements import get_engagements_by_deal
from .errors import (
    AuthenticationError,
    ConfigurationError,
    CrmAnalyticsError,
    DataValidationError,
    FetchError,
    SchemaError,
)
from .forecast import get_forecast_analytics
from .hubspot_client import HubSpotClient
from .performance import get_sales_performance
from .pipeline import get_pipeline_analytics

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_INVALID_INPUT = 2
EXIT_AUTHENTICATION = 3
EXIT_FETCH = 4


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def run(client: HubSpotClient, args: argparse.Namespace) -> Dict[str, Any]:
    """Dispatch a parsed command to the client or analytics engine."""
    command = args.command

    if command == "sales-analytics":
        return get_sales_analytics(
            client,
            args.period,
            args.start_date,
            args.end_date,
            pipeline=args.pipeline,
            deal_stage=args.deal_stage,
            owner_id=args.owner_id,
        ).to_dict()
    if command == "sales-performance":
        return get_sales_performance(
            client,
            args.period,
            args.start_date,
            args.end_date,
            owner_ids=args.owner_ids or None,
            pipeline=args.pipeline,
        ).to_dict()
    if command == "pipeline-analytics":
        return get_pipeline_analytics(
            client,
            args.pipeline_id,
            args.period,
            args.start_date,
            args.end_date,
        ).to_dict()
    if command == "forecast":
        return get_forecast_analytics(
            client,
            args.period,
            periods=args.periods,
            pipeline=args.pipeline,
        ).to_dict()
    if command == "deal-engagements":
        return get_engagements_by_deal(
            client,
            args.deal_id,
            types=args.types or None,
            limit=args.limit,
        ).to_dict()
    if command == "search-contacts":
        page = client.search_contacts(args.query, count=args.count)
        return {"results": page.results, "nextAfter": page.next_after}
    if command == "get-contact":
        return client.get_contact(args.contact_id)
    if command == "create-contact":
        return client.create_contact(dict(args.properties))
    if command == "update-contact":
        return client.update_contact(args.contact_id, dict(args.properties))
    if command == "get-deal":
        return client.get_deal(args.deal_id)
    if command == "create-deal":
        return client.create_deal(dict(args.properties))
    if command == "update-deal":
        return client.update_deal(args.deal_id, dict(args.properties))
    if command == "deal-history":
        return client.get_deal_history(args.deal_id)
    if command == "deal-notes":
        page = client.get_deal_notes(args.deal_id, limit=args.limit, after=args.after)
        return {"results": page.results, "nextAfter": page.next_after}
    if command == "list-deals":
        return client.list_deals(limit=args.limit, after=args.after)
    if command == "get-company":
        return client.get_company(args.company_id)
    if command == "list-companies":
        return client.list_companies(limit=args.limit, after=args.after)

    raise DataValidationError(f"Unknown command: {command}")


def orchestrate(argv: Optional[Sequence[str]] = None) -> int:
    """Run one command end to end and map failures to exit codes.

    Returns:
        ``0`` on success, ``2`` for invalid configuration or input, ``3`` for
        authentication failures, ``4`` for HubSpot fetch or pipeline schema
        failures and ``1`` for anything unexpected.
    """
    try:
        args = parse_args(argv)
        configure_logging(args.log_level)

        config = load_config(timeout_seconds=args.timeout)
        client = HubSpotClient(config=config)

        result = run(client, args)
        print(json.dumps(result, indent=2, default=str))
        return EXIT_OK
    except (ConfigurationError, DataValidationError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except (FetchError, SchemaError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_FETCH
    except CrmAnalyticsError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED
    except Exception:
        logger.exception("Unexpected failure")
        print("ERROR: unexpected failure; rerun with --log-level DEBUG for details.", file=sys.stderr)
        return EXIT_UNEXPECTED


def main() -> int:
    return orchestrate()


if __name__ == "__main__":
    raise SystemExit(main())
