import logging

import pytest

from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import ColorLogger
from tests.fakes import FakeDBClient, FakeRAGClient

PARTITION = "studio_cantini"

_RECONCILIATION_ENV = (
    "RECONCILIATION_DRY_RUN",
    "RECONCILIATION_AUTO_REPAIR",
    "RECONCILIATION_DRIFT_LIMIT",
    "RECONCILIATION_SCROLL_PAGE_SIZE",
    "RECONCILIATION_REPAIR_CONCURRENCY",
    "RECONCILIATION_PARTITIONS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _RECONCILIATION_ENV:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def helper_config() -> HelperConfig:
    return HelperConfig(logger=ColorLogger(logging.getLogger("tests")))


@pytest.fixture
def db() -> FakeDBClient:
    return FakeDBClient()


@pytest.fixture
def rag() -> FakeRAGClient:
    return FakeRAGClient()


def seed_synced_document(db: FakeDBClient, rag: FakeRAGClient, partition: str = PARTITION, chunks: int = 3) -> str:
    """Indexed document whose every chunk references an existing point."""
    doc_id = db.add_document(partition)
    for _ in range(chunks):
        db.add_chunk(doc_id, rag.add_point(partition, doc_id))
    return doc_id
