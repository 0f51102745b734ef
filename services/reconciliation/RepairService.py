"""Repair executor.

Applies one idempotent corrective action per inconsistency:

  missing_in_index      → reset the document to the pre-embedding pipeline status
                          so the indexing pipeline picks it up again.
  orphaned_in_index     → delete every point whose payload document_id matches.
  chunk_count_mismatch  → delete the document's points, then reset it as above.

Repair is best-effort: a failing item is recorded in the report and the batch
continues. Detection, by contrast, is all-or-nothing.
"""

import asyncio

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.exceptions.ReconciliationErrors import RepairItemFailure
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconciliation import (
    REINDEX_STATUS,
    Inconsistency,
    InconsistencyType,
    RepairAction,
    RepairActionStatus,
    RepairActionType,
    RepairReport,
)

ACTION_BY_TYPE: dict[InconsistencyType, RepairActionType] = {
    InconsistencyType.MISSING_IN_INDEX: RepairActionType.REINDEX_DOCUMENT,
    InconsistencyType.ORPHANED_IN_INDEX: RepairActionType.DELETE_ORPHANED_POINTS,
    InconsistencyType.CHUNK_COUNT_MISMATCH: RepairActionType.FIX_CHUNK_MISMATCH,
}


class RepairService:
    """Best-effort, idempotent repair of detected inconsistencies."""

    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db = db_client
        self._rag = rag_client
        self._concurrency = int(helper_config.get_number_val("RECONCILIATION_REPAIR_CONCURRENCY", default=1))
        if self._concurrency < 1:
            raise ValueError("RECONCILIATION_REPAIR_CONCURRENCY must be at least 1.")

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_auto_repair(self, inconsistencies: list[Inconsistency], dry_run: bool = False) -> RepairReport:
        """Repair every inconsistency, isolating failures per item.

        Args:
            inconsistencies (list[Inconsistency]): Items from a drift report.
            dry_run (bool): Report what would be repaired without mutating anything.

        Returns:
            RepairReport: One action per input item, in input order.
        """
        self.logging.info(
            "Starting auto-repair of %d inconsistencies (dry_run=%s, concurrency=%d)...",
            len(inconsistencies), dry_run, self._concurrency,
        )

        sem = asyncio.Semaphore(self._concurrency)
        actions = await asyncio.gather(
            *[self._repair_item(inc, dry_run, sem) for inc in inconsistencies]
        )

        report = RepairReport(total=len(inconsistencies), dry_run=dry_run, actions=list(actions))
        for action in actions:
            if action.status == RepairActionStatus.SUCCESS:
                report.repaired += 1
            elif action.status == RepairActionStatus.WOULD_REPAIR:
                report.skipped += 1
            else:
                report.failed += 1
                report.errors.append(f"{action.document_id}: {action.error}")

        self.logging.info(
            "Auto-repair completed: %d repaired, %d failed, %d skipped of %d.",
            report.repaired, report.failed, report.skipped, report.total,
            color="green" if report.failed == 0 else "red",
        )
        return report

    async def _repair_item(self, inc: Inconsistency, dry_run: bool, sem: asyncio.Semaphore) -> RepairAction:
        """Repair a single item. Never raises; failures become a failed action."""
        async with sem:
            action_type = ACTION_BY_TYPE.get(inc.type)
            try:
                if action_type is None:
                    raise RepairItemFailure(inc.document_id, "unknown", f"No repair action for inconsistency type '{inc.type}'")
                if dry_run:
                    self.logging.info("[dry-run] Would %s for document %s.", action_type.value, inc.document_id)
                    return RepairAction(type=action_type, document_id=inc.document_id, title=inc.title, status=RepairActionStatus.WOULD_REPAIR)
                await self._apply(action_type, inc.document_id)
                return RepairAction(type=action_type, document_id=inc.document_id, title=inc.title, status=RepairActionStatus.SUCCESS)
            except Exception as exc:
                failure = exc if isinstance(exc, RepairItemFailure) else RepairItemFailure(
                    inc.document_id, action_type.value if action_type else "unknown", str(exc) or type(exc).__name__, exc,
                )
                self.logging.error("Failed to %s for document %s: %s", failure.action, inc.document_id, failure.message)
                return RepairAction(type=action_type, document_id=inc.document_id, title=inc.title, status=RepairActionStatus.FAILED, error=failure.message)

    async def _apply(self, action_type: RepairActionType, document_id: str) -> None:
        if action_type == RepairActionType.REINDEX_DOCUMENT:
            await self.do_reindex_document(document_id)
        elif action_type == RepairActionType.DELETE_ORPHANED_POINTS:
            await self.do_delete_document_points(document_id)
        elif action_type == RepairActionType.FIX_CHUNK_MISMATCH:
            # full rebuild, patching single points could leave stale vectors
            await self.do_delete_document_points(document_id)
            await self.do_reindex_document(document_id)

    ##########################################
    ############### ACTIONS ##################
    ##########################################

    async def do_reindex_document(self, document_id: str) -> None:
        """Hand a document back to the indexing pipeline by resetting its status.

        Does not wait for the pipeline to re-embed the document.
        """
        await self._db.do_set_pipeline_status(document_id, REINDEX_STATUS, error=None)
        self.logging.info("Triggered reindex for document %s.", document_id)

    async def do_delete_document_points(self, document_id: str) -> None:
        """Delete every point of a document from the vector index by payload filter."""
        delete_filter = self._rag.build_filter([self._rag.build_match_condition("document_id", document_id)])
        await self._rag.do_delete_points_by_filter(delete_filter)
        self.logging.info("Deleted index points for document %s.", document_id)
