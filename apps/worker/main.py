"""
Import worker: drains queued marketplace import jobs.

Polls ``marketplace_import_jobs`` for pending rows with a payload, claims one
with a conditional update and runs its chunked insert loop. Each pass also
fails running jobs that stopped making progress.
"""

import time
from typing import Optional

import structlog
from dotenv import load_dotenv

from apps.api.core.auth import get_service_client
from apps.api.core.config import Settings, get_settings
from apps.api.core.logging import WORKER_SERVICE, setup_logging
from packages.marketplace_ingestion import ImportJobController, MarketplaceStore, build_job_controller

logger = structlog.get_logger(__name__)


def sweep_stale_jobs(store: MarketplaceStore, settings: Settings) -> int:
    failed = ImportJobController(store).fail_stale(settings.STALE_JOB_TTL_SECONDS)
    return len(failed)


def process_next_job(store: MarketplaceStore, settings: Settings) -> bool:
    """Run the oldest queued job. Returns False when the queue is empty."""
    row = store.next_queued_job()
    if row is None:
        return False

    logger.info("claiming_import_job", job_id=row.get("id"), channel=row.get("channel"))
    controller = build_job_controller(store, chunk_size=settings.IMPORT_CHUNK_SIZE)
    job = controller.run_queued(row)
    if job is not None:
        logger.info("import_job_finished", job_id=job.id, status=job.status.value)
    return True


def run_forever(store: MarketplaceStore, settings: Settings, max_iterations: Optional[int] = None) -> None:
    iterations = 0
    while max_iterations is None or iterations < max_iterations:
        iterations += 1
        try:
            sweep_stale_jobs(store, settings)
            if process_next_job(store, settings):
                continue
            time.sleep(settings.WORKER_POLL_INTERVAL_SECONDS)
        except Exception as e:
            logger.error("worker_loop_error", error=str(e))
            time.sleep(settings.WORKER_POLL_INTERVAL_SECONDS)


def main():
    load_dotenv()
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_output=settings.is_production, service=WORKER_SERVICE)

    try:
        client = get_service_client(settings)
    except RuntimeError as e:
        logger.error("worker_misconfigured", error=str(e))
        return

    logger.info("worker_started", poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS)
    run_forever(MarketplaceStore(client), settings)


if __name__ == "__main__":
    main()
