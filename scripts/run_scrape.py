"""
Run a one-off scrape, or a single scheduler tick, from the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging

from ethical_scraper.scraping.types import RequestOptions, ScrapeRequest
from ethical_scraper.services import build_orchestrator, build_scheduler


async def _scrape(args: argparse.Namespace) -> dict:
    orchestrator = build_orchestrator()
    request = ScrapeRequest(
        url=args.url,
        options=RequestOptions(
            include_iframes=False if args.no_iframes else None,
            screenshot=True if args.screenshot else None,
        ),
        use_cache=False,
        config_name=args.config,
    )
    result = await orchestrator.scrape(request)
    return result.to_dict()


async def _tick() -> list[dict]:
    scheduler = build_scheduler(build_orchestrator())
    jobs = await scheduler.run_tick()
    # Let the launched jobs finish (or hit the grace period) before exiting.
    await scheduler.stop()
    return [job.to_dict() for job in jobs]


def main() -> int:
    parser = argparse.ArgumentParser(description="Run an ethical scrape.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape_parser = subparsers.add_parser("scrape", help="Scrape one URL.")
    scrape_parser.add_argument("url", help="Absolute http(s) URL to scrape.")
    scrape_parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Site configuration name; matched from the URL when omitted.",
    )
    scrape_parser.add_argument("--no-iframes", action="store_true", help="Skip iframe extraction.")
    scrape_parser.add_argument("--screenshot", action="store_true", help="Save a page screenshot.")

    subparsers.add_parser("tick", help="Run one scheduler tick for due registrations.")

    parser.add_argument("--log-level", default="WARNING", help="Root log level.")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if args.command == "scrape":
        payload = asyncio.run(_scrape(args))
        print(json.dumps(payload, indent=2, default=str))
        return 0 if payload["success"] else 1

    payload = asyncio.run(_tick())
    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
