"""Standalone monitoring script for GitHub Actions / cron.

Runs one full cycle (fetch -> detect -> notify -> persist) with the
configuration from the environment, then exits. Exit code is 1 only when
the cycle itself failed; storage or notification problems are reported
in the log but do not fail the run.
"""

import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from src.api.routes import run_cycle
from src.monitor.config import MonitorConfig
from src.notify.email_notifier import EmailNotifier
from src.scraper.ebay_strategy import EbayBrowseStrategy

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("monitor_sellers")


async def run_once(config: MonitorConfig):
    return await run_cycle(config, EbayBrowseStrategy(config), EmailNotifier(config))


def main():
    config = MonitorConfig.from_env()
    logger.info("Starting monitoring cycle for sellers: %s", config.sellers)
    report = asyncio.run(run_once(config))
    logger.info("Cycle report: %s", json.dumps(report.model_dump(mode="json", by_alias=True)))

    if not report.success:
        logger.error("Monitoring cycle failed: %s", report.error)
        sys.exit(1)


if __name__ == "__main__":
    main()
