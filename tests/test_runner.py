"""Runner: per-partition isolation and process exit code."""
import logging
from unittest.mock import AsyncMock, MagicMock

from services.reconciliation.reconciliation_runner import main, run_partitions
from shared.logging.logging_setup import ColorLogger
from shared.models.reconciliation import (
    HealthReport,
    HealthStatus,
    ReconciliationResult,
    RepairReport,
)

LOGGER = ColorLogger(logging.getLogger("tests.runner"))


def _health(partition: str, status: HealthStatus) -> HealthReport:
    return HealthReport(
        partition=partition,
        timestamp="2026-10-19T08:00:00+00:00",
        status=status,
        doc_count=10,
        chunk_ref_count=100,
        point_count=100 if status == HealthStatus.HEALTHY else 80,
        drift=0 if status == HealthStatus.HEALTHY else 20,
        drift_pct=0.0 if status == HealthStatus.HEALTHY else 20.0,
        duration_ms=3,
    )


def _healthy(partition: str) -> ReconciliationResult:
    return ReconciliationResult(health=_health(partition, HealthStatus.HEALTHY))


def _repaired(partition: str) -> ReconciliationResult:
    return ReconciliationResult(
        health=_health(partition, HealthStatus.CRITICAL),
        repair=RepairReport(total=2, repaired=2),
    )


def _stub_service(results: dict) -> MagicMock:
    async def reconcile(partition: str):
        outcome = results[partition]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    service = MagicMock()
    service.do_scheduled_reconciliation = AsyncMock(side_effect=reconcile)
    return service


async def test_all_healthy_or_repaired_exits_zero() -> None:
    service = _stub_service({"a": _healthy("a"), "b": _repaired("b")})

    assert await run_partitions(service, ["a", "b"], LOGGER) == 0


async def test_unrepaired_partition_exits_one() -> None:
    unhealthy = ReconciliationResult(health=_health("b", HealthStatus.DEGRADED))
    service = _stub_service({"a": _healthy("a"), "b": unhealthy})

    assert await run_partitions(service, ["a", "b"], LOGGER) == 1


async def test_failing_partition_does_not_stop_the_others() -> None:
    service = _stub_service({"a": RuntimeError("boom"), "b": _healthy("b")})

    assert await run_partitions(service, ["a", "b"], LOGGER) == 1
    assert [call.args[0] for call in service.do_scheduled_reconciliation.await_args_list] == ["a", "b"]


async def test_main_without_partitions_exits_one(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("ROOT_DIR", str(tmp_path))
    monkeypatch.setenv("DB_POSTGRES_DSN", "postgresql://localhost/app")
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://localhost:6333")

    assert await main() == 1
