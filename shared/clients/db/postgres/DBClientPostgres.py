import asyncio
import re
import uuid
from typing import Any

import asyncpg

from shared.clients.db.DBClientInterface import DBClientInterface
from shared.exceptions.ReconciliationErrors import StoreUnavailable
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.reconciliation import MismatchCandidate, MissingCandidate, PipelineStatus

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")

# connection-level failures; query errors (syntax, constraint, ...) propagate unchanged
_CONNECTION_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
)


class DBClientPostgres(DBClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._dsn = self.get_config_val("DSN", default=None, val_type="string")
        self._min_pool = int(self.get_config_val("MIN_POOL", default=1, val_type="number"))
        self._max_pool = int(self.get_config_val("MAX_POOL", default=5, val_type="number"))
        self._documents_table = self._identifier(self.get_config_val("DOCUMENTS_TABLE", default="archive_documents", val_type="string"))
        self._chunks_table = self._identifier(self.get_config_val("CHUNKS_TABLE", default="archive_document_chunks", val_type="string"))
        self._point_column = self._identifier(self.get_config_val("POINT_ID_COLUMN", default="qdrant_point_id", val_type="string"))
        self._pool: asyncpg.Pool | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Postgres"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="DSN", val_type="string", default=None),
            EnvConfig(env_key="MIN_POOL", val_type="number", default=1),
            EnvConfig(env_key="MAX_POOL", val_type="number", default=5),
            EnvConfig(env_key="DOCUMENTS_TABLE", val_type="string", default="archive_documents"),
            EnvConfig(env_key="CHUNKS_TABLE", val_type="string", default="archive_document_chunks"),
            EnvConfig(env_key="POINT_ID_COLUMN", val_type="string", default="qdrant_point_id"),
        ]

    @staticmethod
    def _identifier(name: str) -> str:
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Invalid SQL identifier in configuration: '{name}'")
        return name

    ##########################################
    ############## LIFECYCLE #################
    ##########################################

    async def boot(self) -> None:
        """Create the asyncpg connection pool."""
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._dsn,
                min_size=self._min_pool,
                max_size=self._max_pool,
                command_timeout=self.timeout,
            )
        except _CONNECTION_ERRORS as exc:
            self.logging.error("Could not create PostgreSQL pool: %s", exc)
            raise StoreUnavailable(self.get_client_type(), "PostgreSQL is unreachable", exc) from exc
        self.logging.info("PostgreSQL pool created (min=%d, max=%d).", self._min_pool, self._max_pool)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def do_healthcheck(self) -> None:
        await self._fetchval("SELECT 1")

    ##########################################
    ############ CORE QUERIES ################
    ##########################################

    def _get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise Exception("PostgreSQL pool not initialised. Call boot() before making queries.")
        return self._pool

    async def _fetch(self, query: str, *args: Any) -> list:
        try:
            return await self._get_pool().fetch(query, *args)
        except _CONNECTION_ERRORS as exc:
            self.logging.error("PostgreSQL query failed on connection level: %s", exc)
            raise StoreUnavailable(self.get_client_type(), str(exc) or type(exc).__name__, exc) from exc

    async def _fetchval(self, query: str, *args: Any) -> Any:
        try:
            return await self._get_pool().fetchval(query, *args)
        except _CONNECTION_ERRORS as exc:
            self.logging.error("PostgreSQL query failed on connection level: %s", exc)
            raise StoreUnavailable(self.get_client_type(), str(exc) or type(exc).__name__, exc) from exc

    async def _execute(self, query: str, *args: Any) -> str:
        try:
            return await self._get_pool().execute(query, *args)
        except _CONNECTION_ERRORS as exc:
            self.logging.error("PostgreSQL statement failed on connection level: %s", exc)
            raise StoreUnavailable(self.get_client_type(), str(exc) or type(exc).__name__, exc) from exc

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_document_count(self, partition: str) -> int:
        count = await self._fetchval(
            f"""
            SELECT COUNT(*)
            FROM {self._documents_table}
            WHERE db = $1
              AND is_current_version = TRUE
              AND deleted_at IS NULL
              AND pipeline_status = 'indexed'
            """,
            partition,
        )
        return int(count or 0)

    async def do_chunk_ref_count(self, partition: str) -> int:
        count = await self._fetchval(
            f"""
            SELECT COUNT(*)
            FROM {self._chunks_table} c
            INNER JOIN {self._documents_table} d ON d.id = c.document_id
            WHERE d.db = $1
              AND d.is_current_version = TRUE
              AND d.deleted_at IS NULL
              AND d.pipeline_status = 'indexed'
              AND c.{self._point_column} IS NOT NULL
            """,
            partition,
        )
        return int(count or 0)

    async def do_missing_candidates(self, partition: str, limit: int) -> list[MissingCandidate]:
        rows = await self._fetch(
            f"""
            SELECT d.id AS document_id,
                   d.title,
                   d.pipeline_status,
                   COUNT(c.id) AS chunk_total,
                   COUNT(c.{self._point_column}) AS chunk_with_ref
            FROM {self._documents_table} d
            LEFT JOIN {self._chunks_table} c ON c.document_id = d.id
            WHERE d.db = $1
              AND d.is_current_version = TRUE
              AND d.deleted_at IS NULL
              AND d.pipeline_status = 'indexed'
            GROUP BY d.id, d.title, d.pipeline_status
            HAVING COUNT(c.id) > 0 AND COUNT(c.{self._point_column}) = 0
            ORDER BY d.id
            LIMIT $2
            """,
            partition,
            limit,
        )
        return [
            MissingCandidate(
                document_id=str(row["document_id"]),
                title=row["title"],
                pipeline_status=str(row["pipeline_status"]),
                chunk_total=int(row["chunk_total"]),
                chunk_with_ref=int(row["chunk_with_ref"]),
            )
            for row in rows
        ]

    async def do_mismatch_candidates(self, partition: str, limit: int) -> list[MismatchCandidate]:
        rows = await self._fetch(
            f"""
            WITH doc_chunks AS (
                SELECT d.id AS document_id,
                       d.title,
                       COUNT(c.id) AS chunk_total,
                       COUNT(c.{self._point_column}) AS chunk_with_ref,
                       ARRAY_AGG(c.{self._point_column}::text)
                           FILTER (WHERE c.{self._point_column} IS NOT NULL) AS point_ids
                FROM {self._documents_table} d
                INNER JOIN {self._chunks_table} c ON c.document_id = d.id
                WHERE d.db = $1
                  AND d.is_current_version = TRUE
                  AND d.deleted_at IS NULL
                  AND d.pipeline_status = 'indexed'
                GROUP BY d.id, d.title
            )
            SELECT *
            FROM doc_chunks
            WHERE chunk_total != chunk_with_ref
            ORDER BY document_id
            LIMIT $2
            """,
            partition,
            limit,
        )
        return [
            MismatchCandidate(
                document_id=str(row["document_id"]),
                title=row["title"],
                chunk_total=int(row["chunk_total"]),
                chunk_with_ref=int(row["chunk_with_ref"]),
                point_ids=list(row["point_ids"] or []),
            )
            for row in rows
        ]

    async def do_existing_document_ids(self, partition: str, document_ids: list[str]) -> set[str]:
        # the caller compares against its own strings, which may be upper-case,
        # unhyphenated or braced; map every parsed UUID back to those inputs
        inputs_by_uuid: dict[uuid.UUID, set[str]] = {}
        for document_id in document_ids:
            try:
                parsed = uuid.UUID(str(document_id))
            except ValueError:
                self.logging.debug("Ignoring non-UUID document id from index: %r", document_id)
                continue
            inputs_by_uuid.setdefault(parsed, set()).add(document_id)
        if not inputs_by_uuid:
            return set()
        valid_ids = list(inputs_by_uuid)
        rows = await self._fetch(
            f"""
            SELECT id
            FROM {self._documents_table}
            WHERE db = $1
              AND id = ANY($2::uuid[])
              AND is_current_version = TRUE
              AND deleted_at IS NULL
            """,
            partition,
            valid_ids,
        )
        existing: set[str] = set()
        for row in rows:
            row_id = row["id"] if isinstance(row["id"], uuid.UUID) else uuid.UUID(str(row["id"]))
            existing.update(inputs_by_uuid.get(row_id, ()))
        return existing

    async def do_set_pipeline_status(self, document_id: str, status: PipelineStatus, error: str | None = None) -> None:
        await self._execute(
            f"""
            UPDATE {self._documents_table}
            SET pipeline_status = $2,
                pipeline_error = $3
            WHERE id = $1::uuid
            """,
            str(document_id),
            PipelineStatus(status).value,
            error,
        )
