"""Reconciliation router: on-demand health, drift and reconciliation runs per partition."""

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from shared.dependencies.auth import verify_api_key
from shared.exceptions.ReconciliationErrors import ScanFailure, StoreUnavailable

reconciliation_router = APIRouter(prefix="/reconciliation", dependencies=[Depends(verify_api_key)], tags=["Reconciliation"])


def _error_response(exc: Exception) -> JSONResponse:
    if isinstance(exc, StoreUnavailable):
        return JSONResponse(status_code=503, content=exc.to_dict())
    return JSONResponse(status_code=502, content=exc.to_dict())


@reconciliation_router.get("/{partition}/health")
async def handle_health(request: Request, partition: str) -> JSONResponse:
    """Compute the current health report of a partition. Read-only."""
    service = request.app.state.reconciliation_service
    try:
        report = await service.do_health_check(partition)
    except StoreUnavailable as exc:
        return _error_response(exc)
    return JSONResponse(content=report.model_dump(mode="json"))


@reconciliation_router.get("/{partition}/drift")
async def handle_drift(
    request: Request,
    partition: str,
    check_missing: bool = True,
    check_orphaned: bool = True,
    check_mismatch: bool = True,
    limit: int | None = Query(default=None, ge=1, le=100000),
) -> JSONResponse:
    """Run drift detection for a partition without repairing anything.

    Without ``limit`` the configured RECONCILIATION_DRIFT_LIMIT applies.
    """
    service = request.app.state.reconciliation_service
    try:
        report = await service.do_detect_drift(
            partition,
            check_missing=check_missing,
            check_orphaned=check_orphaned,
            check_mismatch=check_mismatch,
            limit=limit,
        )
    except (StoreUnavailable, ScanFailure) as exc:
        return _error_response(exc)
    return JSONResponse(content=report.model_dump(mode="json"))


@reconciliation_router.post("/{partition}/run")
async def handle_run(request: Request, partition: str) -> JSONResponse:
    """Run one scheduled reconciliation cycle for a partition, honouring the configured
    auto-repair and dry-run flags."""
    request.app.state.logging.info("Reconciliation run requested for partition '%s'.", partition)
    service = request.app.state.reconciliation_service
    try:
        result = await service.do_scheduled_reconciliation(partition)
    except (StoreUnavailable, ScanFailure) as exc:
        return _error_response(exc)
    return JSONResponse(content=result.model_dump(mode="json"))
