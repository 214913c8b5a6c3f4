#!/usr/bin/env python3
"""
Warm the persistent portal cache with reference data and ticket lists.

Builds a portal against the configured Redis instance, signs in, and loads the
request types (and optionally the user's ticket lists) so the next portal
session starts with a populated persistent tier.
"""

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path
from typing import List, Optional

from helpdesk_portal.app.main import create_portal
from helpdesk_shared.config import get_config


async def warm(
    *,
    redis_url: str,
    api_base_url: Optional[str],
    username: str,
    password: str,
    status_categories: List[str],
    years: List[int],
) -> dict:
    """Execute cache warming and return the summary."""
    overrides = {"redis_url": redis_url}
    if api_base_url:
        overrides["api_base_url"] = api_base_url
    config = get_config(**overrides)

    summary = {"request_types": 0, "ticket_lists": {}, "errors": []}
    async with create_portal(config) as portal:
        await portal.login(username, password)

        try:
            request_types = await portal.tickets.get_request_types()
            summary["request_types"] = len(request_types["options"])
        except Exception as exc:
            summary["errors"].append(f"request_types: {exc}")

        for status_category in status_categories:
            for year in years:
                label = f"{status_category}/{year}"
                try:
                    tickets = await portal.tickets.get_tickets(status_category, year)
                    summary["ticket_lists"][label] = len(tickets)
                except Exception as exc:
                    summary["errors"].append(f"{label}: {exc}")

        summary["cache"] = portal.cache.stats()
    return summary


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Warm the persistent helpdesk portal cache.")
    parser.add_argument("--redis-url", default=os.getenv("HELPDESK_REDIS_URL", "redis://localhost:6379/0"), help="Redis connection URL")
    parser.add_argument("--api-base-url", default=os.getenv("HELPDESK_API_BASE_URL"), help="Ticketing API base URL")
    parser.add_argument("--user", required=True, help="Portal username")
    parser.add_argument("--password", default=os.getenv("HELPDESK_PASSWORD"), help="Portal password (or HELPDESK_PASSWORD)")
    parser.add_argument("--status", action="append", default=None, help="Status category to warm (repeatable)")
    parser.add_argument("--year", action="append", type=int, default=None, help="Year to warm (repeatable)")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    if not args.password:
        print("[cache-warm] a password is required", file=sys.stderr)
        return 2

    try:
        summary = asyncio.run(
            warm(
                redis_url=args.redis_url,
                api_base_url=args.api_base_url,
                username=args.user,
                password=args.password,
                status_categories=args.status or [],
                years=args.year or [],
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[cache-warm] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
