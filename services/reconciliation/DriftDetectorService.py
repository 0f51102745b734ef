"""Drift detection service.

Enumerates concrete inconsistencies between the relational store and the
vector index for one partition, in three independent bounded scans:

  missing:  indexed documents with chunks, none of which references a point.
  mismatch: indexed documents whose referenced chunk count differs from their
            chunk total. Recorded point ids are checked against the index so
            the report names exactly which ones are absent.
  orphaned: document ids present in the index that are not current,
            non-deleted documents of the partition.

Detection is all-or-nothing: if any scan fails the whole call fails, so a
repair is never driven by an incomplete picture.
"""

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint
from shared.exceptions.ReconciliationErrors import ScanFailure, StoreUnavailable
from shared.helper.HelperConfig import HelperConfig
from shared.models.reconciliation import DriftReport, Inconsistency, InconsistencyType

DEFAULT_LIMIT = 1000
DEFAULT_PAGE_SIZE = 100


class DriftDetectorService:
    """Categorised drift between the relational store and the vector index."""

    def __init__(
        self,
        helper_config: HelperConfig,
        db_client: DBClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._db = db_client
        self._rag = rag_client
        self._page_size = int(helper_config.get_number_val("RECONCILIATION_SCROLL_PAGE_SIZE", default=DEFAULT_PAGE_SIZE))
        if self._page_size < 1:
            raise ValueError("RECONCILIATION_SCROLL_PAGE_SIZE must be at least 1.")

    ##########################################
    ################ CORE ####################
    ##########################################

    async def do_detect_drift(
        self,
        partition: str,
        check_missing: bool = True,
        check_orphaned: bool = True,
        check_mismatch: bool = True,
        limit: int = DEFAULT_LIMIT,
    ) -> DriftReport:
        """Run the enabled scans and collect their inconsistencies.

        Args:
            partition (str): Partition key (tenant database).
            check_missing (bool): Run the missing-in-index scan.
            check_orphaned (bool): Run the orphaned-in-index scan.
            check_mismatch (bool): Run the chunk count mismatch scan.
            limit (int): Upper bound of rows each relational scan returns.

        Returns:
            DriftReport: All inconsistencies found.

        Raises:
            StoreUnavailable: If a store cannot be reached.
            ScanFailure: If any other error makes a scan fail.
        """
        self.logging.info(
            "Starting drift detection for partition '%s' (missing=%s, orphaned=%s, mismatch=%s, limit=%d)...",
            partition, check_missing, check_orphaned, check_mismatch, limit,
        )

        missing: list[Inconsistency] = []
        mismatched: list[Inconsistency] = []
        orphaned: list[Inconsistency] = []
        try:
            if check_missing:
                missing = await self._run_scan("missing", self._scan_missing(partition, limit))
            if check_mismatch:
                mismatched = await self._run_scan("mismatch", self._scan_mismatch(partition, limit))
            if check_orphaned:
                orphaned = await self._run_scan("orphaned", self._scan_orphaned(partition))
        except (ScanFailure, StoreUnavailable) as exc:
            self.logging.error("Drift detection failed for partition '%s': %s", partition, exc)
            raise

        # concurrent writes can place one document in both categories; the
        # mismatch repair rebuilds the document and covers the missing repair
        mismatched_ids = {inc.document_id for inc in mismatched}
        deduplicated = [inc for inc in missing if inc.document_id not in mismatched_ids]
        if len(deduplicated) != len(missing):
            self.logging.info(
                "Dropped %d missing-in-index entries also flagged as chunk count mismatch.",
                len(missing) - len(deduplicated),
            )

        report = DriftReport.from_inconsistencies(partition, deduplicated + mismatched + orphaned)
        self.logging.info(
            "Drift detection for partition '%s' completed: %d inconsistencies %s",
            partition, report.total_inconsistencies, report.by_type,
            color="green" if report.total_inconsistencies == 0 else "yellow",
        )
        return report

    async def _run_scan(self, scan: str, coro) -> list[Inconsistency]:
        """Await a scan, turning any failure other than StoreUnavailable into ScanFailure."""
        try:
            return await coro
        except (StoreUnavailable, ScanFailure):
            raise
        except Exception as exc:
            raise ScanFailure(scan, str(exc) or type(exc).__name__, exc) from exc

    ##########################################
    ################ SCANS ###################
    ##########################################

    async def _scan_missing(self, partition: str, limit: int) -> list[Inconsistency]:
        rows = await self._db.do_missing_candidates(partition, limit)
        found = [
            Inconsistency(
                type=InconsistencyType.MISSING_IN_INDEX,
                document_id=row.document_id,
                title=row.title,
                details={
                    "pipeline_status": row.pipeline_status,
                    "chunk_total": row.chunk_total,
                    "chunk_with_ref": row.chunk_with_ref,
                },
            )
            for row in rows
            if row.chunk_total > 0 and row.chunk_with_ref == 0
        ]
        self.logging.debug("Missing scan: %d document(s) flagged.", len(found))
        return found

    async def _scan_mismatch(self, partition: str, limit: int) -> list[Inconsistency]:
        rows = await self._db.do_mismatch_candidates(partition, limit)
        found: list[Inconsistency] = []
        for row in rows:
            # documents without any recorded point belong to the missing scan
            if row.chunk_with_ref == row.chunk_total or not row.point_ids:
                continue
            existing = await self._verify_points(row.point_ids)
            found.append(
                Inconsistency(
                    type=InconsistencyType.CHUNK_COUNT_MISMATCH,
                    document_id=row.document_id,
                    title=row.title,
                    details={
                        "chunk_total": row.chunk_total,
                        "chunk_with_ref": row.chunk_with_ref,
                        "index_existing": len(existing),
                        "missing_point_ids": [pid for pid in row.point_ids if pid not in existing],
                    },
                )
            )
        self.logging.debug("Mismatch scan: %d document(s) flagged.", len(found))
        return found

    async def _scan_orphaned(self, partition: str) -> list[Inconsistency]:
        index_doc_ids = await self._collect_index_document_ids(partition)
        if not index_doc_ids:
            return []
        ordered_ids = sorted(index_doc_ids)
        existing = await self._db.do_existing_document_ids(partition, ordered_ids)
        found = [
            Inconsistency(
                type=InconsistencyType.ORPHANED_IN_INDEX,
                document_id=doc_id,
                title=None,
                details={"reason": "Document deleted or not found in the relational store"},
            )
            for doc_id in ordered_ids
            if doc_id not in existing
        ]
        self.logging.debug("Orphan scan: %d of %d indexed document id(s) orphaned.", len(found), len(ordered_ids))
        return found

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _verify_points(self, point_ids: list[str]) -> set[str]:
        """Return the subset of point ids that exist in the index, looked up in batches."""
        existing: set[str] = set()
        for start in range(0, len(point_ids), self._page_size):
            batch = point_ids[start: start + self._page_size]
            existing.update(await self._rag.do_retrieve(batch))
        return existing

    async def _collect_index_document_ids(self, partition: str) -> set[str]:
        """Scroll every point of the partition and collect the distinct document ids.

        Raises:
            ScanFailure: If the backend returns a cursor it already returned,
                         which would otherwise loop forever.
        """
        partition_filter = [self._rag.build_match_condition("db", partition)]
        if await self._rag.do_count(partition_filter) == 0:
            return set()

        doc_ids: set[str] = set()
        seen_offsets: set = set()
        offset = None
        pages = 0
        while True:
            page = await self._rag.do_scroll(
                filters=partition_filter,
                with_payload=["document_id"],
                with_vector=False,
                limit=self._page_size,
                offset=offset,
            )
            pages += 1
            for raw_point in page.result:
                point = VectorPoint.from_raw(raw_point)
                if point.document_id is not None:
                    doc_ids.add(point.document_id)
            offset = page.next_page_offset
            if offset is None:
                break
            if offset in seen_offsets:
                raise ScanFailure("orphaned", f"scroll cursor {offset!r} returned twice")
            seen_offsets.add(offset)

        self.logging.debug("Scrolled %d page(s), %d distinct document id(s) in index.", pages, len(doc_ids))
        return doc_ids
