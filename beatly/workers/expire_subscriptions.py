"""Scheduled sweep that downgrades lapsed paid subscriptions to the free plan."""
import argparse
import logging

from beatly.core.config import settings
from beatly.core.logging import configure_logging
from beatly.features.subscriptions.service import expire_subscriptions

logger = logging.getLogger("beatly.workers.expire_subscriptions")


def run(dry_run: bool = False) -> dict:
    result = expire_subscriptions(dry_run=dry_run)
    logger.info(
        "[expire] subscription expiry sweep",
        extra={"dry_run": dry_run, "candidates": result["candidates"], "expired": result["expired"]},
    )
    return result


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Downgrade subscriptions whose paid period has ended")
    parser.add_argument("--dry-run", action="store_true", help="Count lapsed subscriptions without changing them")
    args = parser.parse_args()

    configure_logging(settings.ENV)
    print(run(dry_run=args.dry_run))
