"""Reconciliation runner entry point.

One-shot process meant to be started by an external scheduler (cron, k8s
CronJob). Runs one reconciliation cycle for every partition listed in
RECONCILIATION_PARTITIONS and exits 0 only if every partition ends healthy
or fully repaired, so the scheduler can alert on sustained drift.

Usage:
    python -m services.reconciliation.reconciliation_runner
"""

import asyncio
import sys

from services.reconciliation.ReconciliationService import ReconciliationService
from shared.clients.db.DBClientManager import DBClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.reconciliation import ReconciliationResult


def log_summary(logger, partition: str, result: ReconciliationResult) -> None:
    """Log the end-of-run summary of one partition."""
    health = result.health
    logger.info(
        "Partition '%s' health: %s (chunk refs=%d, points=%d, drift=%.2f%%)",
        partition, health.status.value, health.chunk_ref_count, health.point_count, health.drift_pct,
    )
    if result.drift is not None:
        logger.info("Partition '%s' drift: %d inconsistencies %s", partition, result.drift.total_inconsistencies, result.drift.by_type)
        for inc in result.drift.inconsistencies[:5]:
            logger.info("  - %s %s", inc.type.value, inc.document_id)
    if result.repair is not None:
        repair = result.repair
        logger.info(
            "Partition '%s' repair%s: %d repaired, %d failed, %d skipped",
            partition, " (dry-run)" if repair.dry_run else "", repair.repaired, repair.failed, repair.skipped,
        )
        for index, error in enumerate(repair.errors, start=1):
            logger.error("  %d. %s", index, error)

    if not result.needs_attention and result.fully_repaired:
        logger.info("Partition '%s': NEEDS ATTENTION → REPAIRED", partition, color="green")
    elif not result.needs_attention:
        logger.info("Partition '%s': HEALTHY", partition, color="green")
    else:
        logger.warning("Partition '%s': NEEDS ATTENTION", partition, color="yellow")


async def run_partitions(service: ReconciliationService, partitions: list[str], logger) -> int:
    """Reconcile the partitions one after another.

    A failing partition is logged and counted, the remaining ones still run.

    Returns:
        int: 0 if every partition ended healthy or fully repaired, 1 otherwise.
    """
    exit_code = 0
    for partition in partitions:
        try:
            result = await service.do_scheduled_reconciliation(partition)
        except Exception as exc:
            logger.error("Reconciliation FAILED for partition '%s': %s", partition, exc)
            exit_code = 1
            continue
        log_summary(logger, partition, result)
        exit_code = max(exit_code, result.exit_code)
    return exit_code


async def main() -> int:
    """Boot both stores, run every configured partition and return the exit code."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    try:
        partitions = config.get_list_val("RECONCILIATION_PARTITIONS")
        db_client = DBClientManager(helper_config=config).get_client()
        rag_client = RAGClientManager(helper_config=config).get_client()
    except ValueError as e:
        logger.error("Invalid configuration: %s", e)
        return 1
    if not partitions:
        logger.error("RECONCILIATION_PARTITIONS is empty. Nothing to reconcile.")
        return 1

    try:
        # both stores are required, a run without either cannot compute health
        try:
            await db_client.boot()
            await db_client.do_healthcheck()
            await rag_client.boot()
            await rag_client.do_healthcheck()
            if not await rag_client.do_existence_check():
                logger.error("Collection '%s' does not exist in %s. Aborting.", rag_client.get_collection(), rag_client.get_engine_name())
                return 1
        except Exception as e:
            logger.error("Error booting store clients: %s. Aborting.", e)
            return 1

        service = ReconciliationService(helper_config=config, db_client=db_client, rag_client=rag_client)
        logger.info(
            "Reconciliation job started for %d partition(s) (auto_repair=%s, dry_run=%s, collection=%s).",
            len(partitions), service.auto_repair, service.dry_run, rag_client.get_collection(), color="cyan",
        )
        return await run_partitions(service, partitions, logger)
    finally:
        await db_client.close()
        await rag_client.close()


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
