"""Health check: drift formula, thresholds and store failures."""
import pytest

from services.reconciliation.HealthCheckService import HealthCheckService, classify_drift, compute_drift_pct
from shared.exceptions.ReconciliationErrors import StoreUnavailable
from shared.models.reconciliation import HealthStatus
from tests.conftest import PARTITION, seed_synced_document


@pytest.fixture
def service(helper_config, db, rag) -> HealthCheckService:
    return HealthCheckService(helper_config, db, rag)


async def test_empty_partition_is_healthy(service: HealthCheckService) -> None:
    report = await service.do_health_check(PARTITION)

    assert report.doc_count == 0
    assert report.drift == 0
    assert report.drift_pct == 0
    assert report.status == HealthStatus.HEALTHY


def test_drift_pct_formula_over_small_grid() -> None:
    for a in range(0, 30):
        for b in range(0, 30):
            expected = 100 * abs(a - b) / a if a > 0 else 0
            assert compute_drift_pct(a, b) == expected


@pytest.mark.parametrize(
    ("pct", "status"),
    [
        (0.0, HealthStatus.HEALTHY),
        (0.99, HealthStatus.HEALTHY),
        (1.0, HealthStatus.DEGRADED),
        (4.99, HealthStatus.DEGRADED),
        (5.0, HealthStatus.CRITICAL),
        (250.0, HealthStatus.CRITICAL),
    ],
)
def test_status_thresholds(pct: float, status: HealthStatus) -> None:
    assert classify_drift(pct) == status


async def test_counts_only_the_requested_partition(service: HealthCheckService, db, rag) -> None:
    for _ in range(4):
        seed_synced_document(db, rag, chunks=5)
    seed_synced_document(db, rag, partition="other_db", chunks=7)

    report = await service.do_health_check(PARTITION)

    assert report.doc_count == 4
    assert report.chunk_ref_count == 20
    assert report.point_count == 20
    assert report.status == HealthStatus.HEALTHY


async def test_missing_points_degrade_and_then_turn_critical(service: HealthCheckService, db, rag) -> None:
    for _ in range(10):
        seed_synced_document(db, rag, chunks=10)
    victims = list(rag.points)[:2]
    for pid in victims:
        del rag.points[pid]

    report = await service.do_health_check(PARTITION)
    assert report.drift == 2
    assert report.drift_pct == 2.0
    assert report.status == HealthStatus.DEGRADED

    for pid in list(rag.points)[:8]:
        del rag.points[pid]
    report = await service.do_health_check(PARTITION)
    assert report.drift == 10
    assert report.status == HealthStatus.CRITICAL


async def test_report_keeps_exact_drift_pct(service: HealthCheckService, db, rag) -> None:
    seed_synced_document(db, rag, chunks=3)
    del rag.points[db.chunks[0]["point_id"]]

    report = await service.do_health_check(PARTITION)

    assert (report.chunk_ref_count, report.point_count) == (3, 2)
    assert report.drift_pct == 100 * 1 / 3


async def test_scenario_c_fully_synced_partition(service: HealthCheckService, db, rag) -> None:
    # 50 documents, 1000 chunks, all synced 1:1
    for _ in range(50):
        seed_synced_document(db, rag, chunks=20)

    report = await service.do_health_check(PARTITION)

    assert report.doc_count == 50
    assert report.chunk_ref_count == 1000
    assert report.point_count == 1000
    assert report.drift == 0
    assert report.drift_pct == 0
    assert report.status == HealthStatus.HEALTHY


async def test_scenario_a_counts_agree(service: HealthCheckService, db, rag) -> None:
    doc_id = db.add_document(PARTITION)
    db.add_chunk(doc_id, rag.add_point(PARTITION, doc_id))
    db.add_chunk(doc_id, rag.add_point(PARTITION, doc_id))
    db.add_chunk(doc_id, None)

    report = await service.do_health_check(PARTITION)

    assert report.chunk_ref_count == 2
    assert report.point_count == 2
    assert report.drift == 0
    assert report.status == HealthStatus.HEALTHY


async def test_store_unavailable_aborts(service: HealthCheckService, rag) -> None:
    rag.fail_on["do_count"] = StoreUnavailable("rag", "connection refused")

    with pytest.raises(StoreUnavailable):
        await service.do_health_check(PARTITION)
