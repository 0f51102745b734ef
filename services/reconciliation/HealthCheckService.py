"""Health check service.

Computes a point-in-time consistency score for one partition by comparing the
number of point references recorded in the relational store with the number
of points the vector index holds for that partition.

The two counts are read independently and do not form an atomic snapshot.
The score is a heuristic that decides whether the more expensive drift
detection is worth running, not a consistency proof.
"""

import time

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconciliation import HealthReport, HealthStatus, utc_now_iso

HEALTHY_THRESHOLD_PCT = 1.0   # drift below this is healthy
DEGRADED_THRESHOLD_PCT = 5.0  # drift below this is degraded, above it critical


def compute_drift_pct(chunk_ref_count: int, point_count: int) -> float:
    """Percentage drift between recorded references and index points.

    Args:
        chunk_ref_count (int): Chunks with a point reference in the relational store.
        point_count (int): Points in the vector index.

    Returns:
        float: 100 * |chunk_ref_count - point_count| / chunk_ref_count, or 0 if chunk_ref_count is 0.
    """
    if chunk_ref_count <= 0:
        return 0.0
    return 100 * abs(chunk_ref_count - point_count) / chunk_ref_count


def classify_drift(drift_pct: float) -> HealthStatus:
    if drift_pct < HEALTHY_THRESHOLD_PCT:
        return HealthStatus.HEALTHY
    if drift_pct < DEGRADED_THRESHOLD_PCT:
        return HealthStatus.DEGRADED
    return HealthStatus.CRITICAL


class HealthCheckService:
    """Read-only consistency score of a partition."""

    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db = db_client
        self._rag = rag_client

    async def do_health_check(self, partition: str) -> HealthReport:
        """Compute the health report of a partition.

        Args:
            partition (str): Partition key (tenant database).

        Returns:
            HealthReport: Counts, drift and status.

        Raises:
            StoreUnavailable: If either store cannot be reached.
        """
        self.logging.info("Starting health check for partition '%s'...", partition)
        started = time.monotonic()

        try:
            doc_count = await self._db.do_document_count(partition)
            chunk_ref_count = await self._db.do_chunk_ref_count(partition)
            point_count = await self._rag.do_count([self._rag.build_match_condition("db", partition)])
        except Exception as exc:
            self.logging.error("Health check failed for partition '%s': %s", partition, exc)
            raise

        drift = abs(chunk_ref_count - point_count)
        drift_pct = compute_drift_pct(chunk_ref_count, point_count) if doc_count > 0 else 0.0
        status = classify_drift(drift_pct)

        report = HealthReport(
            partition=partition,
            status=status,
            timestamp=utc_now_iso(),
            doc_count=doc_count,
            chunk_ref_count=chunk_ref_count,
            point_count=point_count,
            drift=drift,
            drift_pct=drift_pct,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self.logging.info(
            "Health check for partition '%s': %s (documents=%d, chunk refs=%d, points=%d, drift=%d / %.2f%%)",
            partition, status.value, doc_count, chunk_ref_count, point_count, drift, drift_pct,
            color="green" if status == HealthStatus.HEALTHY else "yellow",
        )
        return report
