"""CLI entry point for the dental PMS adapter.

A small terminal tool for checking a PMS connection and poking at its
data during development.  For production, use the FastAPI server
(``dental_pms/server.py``).

Usage:
    uv run python -m dental_pms.main validate
    uv run python -m dental_pms.main --pms carestack locations
    uv run python -m dental_pms.main search-phone "(555) 0123"
    uv run python -m dental_pms.main --debug slots 1 2026-03-02 2026-03-03
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv
from fastapi.encoders import jsonable_encoder

from dental_pms.adapters.base import PMSAdapter
from dental_pms.adapters.factory import create_adapter, supported_pms_types
from dental_pms.errors import PMSError
from dental_pms.models import DateRange

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool = False) -> None:
    """Set up logging: WARNING by default, DEBUG when --debug is passed."""
    root_level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=root_level,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if not debug:
        # Silence chatty HTTP loggers even if root is WARNING
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("dental_pms").setLevel(logging.DEBUG if debug else logging.INFO)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Dental PMS adapter CLI")
    parser.add_argument(
        "--debug", action="store_true",
        help="Show all log messages including HTTP requests",
    )
    parser.add_argument(
        "--pms", default="carestack", choices=supported_pms_types(),
        help="PMS vendor to talk to (credentials come from the environment)",
    )
    parser.add_argument("--tenant", default="cli", help="Tenant id used in logs and audit")

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("validate", help="Check the configured credentials")
    commands.add_parser("locations", help="List practice locations")
    commands.add_parser("providers", help="List providers")
    commands.add_parser("statuses", help="List appointment statuses")

    search = commands.add_parser("search-phone", help="Find patients by phone number")
    search.add_argument("phone")

    slots = commands.add_parser("slots", help="Availability for a provider")
    slots.add_argument("provider_id")
    slots.add_argument("start", help="ISO date or datetime")
    slots.add_argument("end", help="ISO date or datetime")

    sync = commands.add_parser("sync-patients", help="Patients modified since a timestamp")
    sync.add_argument("modified_since")
    sync.add_argument("--token", default=None, help="Continuation token from a previous page")
    return parser


async def _run(adapter: PMSAdapter, args: argparse.Namespace) -> Any:
    if args.command == "validate":
        return (await adapter.validate_connection()).as_dict()
    if args.command == "locations":
        return await adapter.list_locations()
    if args.command == "providers":
        return await adapter.list_providers()
    if args.command == "statuses":
        return await adapter.get_appointment_statuses()
    if args.command == "search-phone":
        return await adapter.search_patient_by_phone(args.phone)
    if args.command == "slots":
        return await adapter.get_available_slots(
            args.provider_id, DateRange(start=args.start, end=args.end),
        )
    if args.command == "sync-patients":
        return await adapter.sync_patients(args.modified_since, args.token)
    raise ValueError(f"Unknown command: {args.command}")


async def _main(args: argparse.Namespace) -> int:
    async with create_adapter(args.pms, tenant_id=args.tenant, actor="cli") as adapter:
        try:
            result = await _run(adapter, args)
        except PMSError as e:
            logger.debug("Command failed", exc_info=True)
            print(f"Error ({type(e).__name__}): {e.message}", file=sys.stderr)
            print(e.user_message, file=sys.stderr)
            return 1
    print(json.dumps(jsonable_encoder(result), indent=2))
    return 0


def main():
    """Parse arguments and run one command against the PMS."""
    args = _build_parser().parse_args()

    load_dotenv()
    _configure_logging(debug=args.debug)

    sys.exit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
