"""Reconciliation orchestrator.

One run per partition, no state kept between runs:

  health check ── healthy ──────────────────────────────► health
       │
       └─ degraded / critical → drift detection
                                  │
                                  ├─ no inconsistencies or auto-repair off ► health + drift
                                  └─ auto-repair on → repair (dry-run aware) ► health + drift + repair

Phases run strictly one after another so the counts of one report stay
comparable and the load on both stores stays bounded.
"""

from services.reconciliation.DriftDetectorService import DEFAULT_LIMIT, DriftDetectorService
from services.reconciliation.HealthCheckService import HealthCheckService
from services.reconciliation.RepairService import RepairService
from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconciliation import DriftReport, HealthReport, HealthStatus, Inconsistency, ReconciliationResult, RepairReport


class ReconciliationService:
    """Composes health check, drift detection and repair into one scheduled run."""

    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.dry_run = helper_config.get_bool_val("RECONCILIATION_DRY_RUN", default=False)
        self.auto_repair = helper_config.get_bool_val("RECONCILIATION_AUTO_REPAIR", default=False)
        self.drift_limit = int(helper_config.get_number_val("RECONCILIATION_DRIFT_LIMIT", default=DEFAULT_LIMIT))

        self.health_check = HealthCheckService(helper_config, db_client, rag_client)
        self.drift_detector = DriftDetectorService(helper_config, db_client, rag_client)
        self.repair = RepairService(helper_config, db_client, rag_client)

    ##########################################
    ############### PHASES ###################
    ##########################################

    async def do_health_check(self, partition: str) -> HealthReport:
        return await self.health_check.do_health_check(partition)

    async def do_detect_drift(
        self,
        partition: str,
        check_missing: bool = True,
        check_orphaned: bool = True,
        check_mismatch: bool = True,
        limit: int | None = None,
    ) -> DriftReport:
        return await self.drift_detector.do_detect_drift(
            partition,
            check_missing=check_missing,
            check_orphaned=check_orphaned,
            check_mismatch=check_mismatch,
            limit=limit if limit is not None else self.drift_limit,
        )

    async def do_auto_repair(self, inconsistencies: list[Inconsistency], dry_run: bool = False) -> RepairReport:
        return await self.repair.do_auto_repair(inconsistencies, dry_run=dry_run)

    ##########################################
    ############ SCHEDULED RUN ###############
    ##########################################

    async def do_scheduled_reconciliation(self, partition: str) -> ReconciliationResult:
        """Run one reconciliation cycle for a partition.

        Args:
            partition (str): Partition key (tenant database).

        Returns:
            ReconciliationResult: Health, plus drift and repair when those phases ran.

        Raises:
            StoreUnavailable: If a store cannot be reached during health check or drift detection.
            ScanFailure: If drift detection fails.
        """
        self.logging.info(
            "Starting scheduled reconciliation for partition '%s' (auto_repair=%s, dry_run=%s)...",
            partition, self.auto_repair, self.dry_run, color="cyan",
        )
        try:
            health = await self.do_health_check(partition)
            if health.status == HealthStatus.HEALTHY:
                return ReconciliationResult(health=health)

            drift = await self.do_detect_drift(partition)
            if not self.auto_repair or drift.total_inconsistencies == 0:
                if drift.total_inconsistencies > 0:
                    self.logging.warning(
                        "Partition '%s' has %d inconsistencies, auto-repair is disabled.",
                        partition, drift.total_inconsistencies,
                    )
                return ReconciliationResult(health=health, drift=drift)

            repair = await self.do_auto_repair(drift.inconsistencies, dry_run=self.dry_run)
            return ReconciliationResult(health=health, drift=drift, repair=repair)
        except Exception as exc:
            self.logging.error("Scheduled reconciliation failed for partition '%s': %s", partition, exc)
            raise
