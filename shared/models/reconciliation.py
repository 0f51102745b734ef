"""Pydantic models for the reconciliation core.

Hierarchy:
  MissingCandidate, MismatchCandidate: raw rows returned by the relational store.
  HealthReport: point-in-time consistency score of a partition.
  Inconsistency, DriftReport: categorised drift found by the detector.
  RepairAction, RepairReport: outcome of the repair executor.
  ReconciliationResult: summary of one scheduled run.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, computed_field


def utc_now_iso() -> str:
    """Returns the current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


##########################################
################ ENUMS ###################
##########################################

class PipelineStatus(str, Enum):
    PENDING = "pending"
    CHUNKED = "chunked"
    EMBEDDING = "embedding"
    INDEXED = "indexed"
    FAILED = "failed"


# status a document is reset to so the indexing pipeline embeds it again
REINDEX_STATUS = PipelineStatus.CHUNKED


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class InconsistencyType(str, Enum):
    MISSING_IN_INDEX = "missing_in_index"
    ORPHANED_IN_INDEX = "orphaned_in_index"
    CHUNK_COUNT_MISMATCH = "chunk_count_mismatch"


class RepairActionType(str, Enum):
    REINDEX_DOCUMENT = "reindex_document"
    DELETE_ORPHANED_POINTS = "delete_orphaned_points"
    FIX_CHUNK_MISMATCH = "fix_chunk_mismatch"


class RepairActionStatus(str, Enum):
    SUCCESS = "success"
    WOULD_REPAIR = "would_repair"
    FAILED = "failed"


##########################################
############ STORE ROWS ##################
##########################################

class MissingCandidate(BaseModel):
    """Indexed document whose chunks carry no point reference at all."""

    document_id: str
    title: str | None = None
    pipeline_status: str
    chunk_total: int
    chunk_with_ref: int


class MismatchCandidate(BaseModel):
    """Indexed document whose referenced chunk count differs from its chunk total.

    Attributes:
        point_ids: The non-null point ids recorded on its chunks.
    """

    document_id: str
    title: str | None = None
    chunk_total: int
    chunk_with_ref: int
    point_ids: list[str] = []


##########################################
############### REPORTS ##################
##########################################

class HealthReport(BaseModel):
    """Point-in-time consistency score of one partition.

    The relational and index counts are read independently and are not one
    atomic snapshot.
    """

    partition: str
    status: HealthStatus
    timestamp: str
    doc_count: int
    chunk_ref_count: int
    point_count: int
    drift: int
    drift_pct: float
    duration_ms: int = 0


class Inconsistency(BaseModel):
    type: InconsistencyType
    document_id: str
    title: str | None = None
    details: dict[str, Any] = {}


class DriftReport(BaseModel):
    partition: str
    timestamp: str
    total_inconsistencies: int
    by_type: dict[str, int]
    inconsistencies: list[Inconsistency]

    @classmethod
    def from_inconsistencies(cls, partition: str, inconsistencies: list[Inconsistency]) -> "DriftReport":
        by_type = {t.value: 0 for t in InconsistencyType}
        for inc in inconsistencies:
            by_type[inc.type.value] += 1
        return cls(
            partition=partition,
            timestamp=utc_now_iso(),
            total_inconsistencies=len(inconsistencies),
            by_type=by_type,
            inconsistencies=inconsistencies,
        )


class RepairAction(BaseModel):
    type: RepairActionType | None = None
    document_id: str
    title: str | None = None
    status: RepairActionStatus
    error: str | None = None


class RepairReport(BaseModel):
    """Outcome of one repair batch.

    Attributes:
        repaired: Actions applied successfully.
        failed:   Actions that raised; their messages are collected in errors.
        skipped:  Actions not applied because of dry-run.
    """

    total: int
    repaired: int = 0
    failed: int = 0
    skipped: int = 0
    dry_run: bool = False
    actions: list[RepairAction] = []
    errors: list[str] = []


class ReconciliationResult(BaseModel):
    health: HealthReport
    drift: DriftReport | None = None
    repair: RepairReport | None = None

    @computed_field
    @property
    def fully_repaired(self) -> bool:
        """True if a real repair ran and every inconsistency was fixed."""
        if self.repair is None or self.repair.dry_run:
            return False
        return self.repair.failed == 0 and self.repair.skipped == 0 and self.repair.repaired == self.repair.total

    @computed_field
    @property
    def needs_attention(self) -> bool:
        return self.health.status != HealthStatus.HEALTHY and not self.fully_repaired

    @computed_field
    @property
    def exit_code(self) -> int:
        return 1 if self.needs_attention else 0
