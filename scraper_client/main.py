from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Iterable

from scraper_client.core.config import get_settings
from scraper_client.core.errors import ScraperClientError
from scraper_client.core.telemetry import (
    configure_client_logging,
    setup_client_telemetry,
    shutdown_client_telemetry,
)
from scraper_client.services.scraper_client import ScraperClient

logger = logging.getLogger(__name__)


async def run_client(lines: Iterable[str]) -> int:
    """Submit one JSON encoded CV per line of ``lines``."""

    settings = get_settings()
    configure_client_logging()
    telemetry_runtime = setup_client_telemetry(settings)

    sent = 0
    skipped = 0
    try:
        async with ScraperClient(settings.login_users_restriction, settings=settings) as client:
            await client.authenticate()
            for line_number, line in enumerate(lines, start=1):
                if not line.strip():
                    continue
                try:
                    cv = json.loads(line)
                except json.JSONDecodeError as exc:
                    logger.error("line %s is not valid json: %s", line_number, exc)
                    return 1
                if await client.submit(cv):
                    sent += 1
                else:
                    skipped += 1
    except ScraperClientError as exc:
        logger.error("scraper client failed: %s", exc)
        return 1
    finally:
        shutdown_client_telemetry(telemetry_runtime)

    logger.info("sent %s cv(s), skipped %s already sent reference(s)", sent, skipped)
    return 0


def main() -> int:
    return asyncio.run(run_client(sys.stdin))


if __name__ == "__main__":
    raise SystemExit(main())
