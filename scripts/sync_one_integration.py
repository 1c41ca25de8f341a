import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import argparse
from uuid import UUID

import structlog

from sync_avito.db.engine import engine
from sync_avito.logging_config import setup_logging
from sync_avito.services.reconciler import reconcile_integration

setup_logging()
logger = structlog.get_logger(__name__)


def main() -> None:
    """
    Reconcile a single integration and print the outcome as JSON.
    """
    parser = argparse.ArgumentParser(description="Reconcile one Avito integration")
    parser.add_argument("integration_id", type=UUID)
    parser.add_argument("--exclude-booking-id", default=None)
    parser.add_argument("--dry-run", action="store_true", help="Skip local writes")
    args = parser.parse_args()

    logger.info("manual_sync_started", integration_id=str(args.integration_id))
    try:
        outcome = reconcile_integration(
            engine,
            args.integration_id,
            exclude_booking_id=args.exclude_booking_id,
            dry_run=args.dry_run,
        )
    except Exception:
        logger.exception("manual_sync_failed", integration_id=str(args.integration_id))
        raise

    print(outcome.to_response().model_dump_json(by_alias=True, exclude_none=True, indent=2))


if __name__ == "__main__":
    main()
