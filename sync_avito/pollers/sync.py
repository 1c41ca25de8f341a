import argparse

import structlog

from sync_avito.config import DRY_RUN
from sync_avito.db.engine import engine
from sync_avito.logging_config import setup_logging
from sync_avito.services.sync_queue import process_sync_queue, sync_all_integrations

setup_logging()
logger = structlog.get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run due Avito syncs from the sync queue")
    parser.add_argument("--all", action="store_true", help="Reconcile every active integration")
    args = parser.parse_args(argv)

    if args.all:
        sync_all_integrations(engine, dry_run=DRY_RUN)
    else:
        process_sync_queue(engine, dry_run=DRY_RUN)


if __name__ == "__main__":
    main()
