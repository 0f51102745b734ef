"""Qdrant adapter: request shapes, response parsing and error mapping."""
import json

import httpx
import pytest

from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.exceptions.ReconciliationErrors import StoreUnavailable

BASE_URL = "http://qdrant.test:6333"


@pytest.fixture(autouse=True)
def qdrant_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", BASE_URL)
    monkeypatch.setenv("RAG_QDRANT_API_KEY", "secret")
    monkeypatch.setenv("RAG_QDRANT_COLLECTION", "archive_chunks")
    monkeypatch.delenv("RAG_ENGINE", raising=False)


async def _booted(helper_config, handler) -> tuple[RAGClientQdrant, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = RAGClientQdrant(helper_config=helper_config)
    await client.boot(transport=httpx.MockTransport(recording_handler))
    return client, requests


def test_manager_selects_qdrant_by_default(helper_config) -> None:
    client = RAGClientManager(helper_config=helper_config).get_client()

    assert isinstance(client, RAGClientQdrant)
    assert client.get_collection() == "archive_chunks"


def test_manager_rejects_unknown_engine(helper_config, monkeypatch) -> None:
    monkeypatch.setenv("RAG_ENGINE", "milvus")

    with pytest.raises(ValueError):
        RAGClientManager(helper_config=helper_config)


def test_missing_base_url_fails_at_construction(helper_config, monkeypatch) -> None:
    monkeypatch.delenv("RAG_QDRANT_BASE_URL")

    with pytest.raises(ValueError):
        RAGClientQdrant(helper_config=helper_config)


async def test_count_sends_exact_partition_filter(helper_config) -> None:
    client, requests = await _booted(
        helper_config, lambda r: httpx.Response(200, json={"result": {"count": 42}, "status": "ok"})
    )

    count = await client.do_count([client.build_match_condition("db", "studio")])
    await client.close()

    assert count == 42
    assert requests[0].url.path == "/collections/archive_chunks/points/count"
    assert requests[0].headers["api-key"] == "secret"
    assert json.loads(requests[0].content) == {
        "filter": {"must": [{"key": "db", "match": {"value": "studio"}}]},
        "exact": True,
    }


async def test_retrieve_returns_only_existing_ids(helper_config) -> None:
    client, requests = await _booted(
        helper_config, lambda r: httpx.Response(200, json={"result": [{"id": "a"}, {"id": "c"}]})
    )

    existing = await client.do_retrieve(["a", "b", "c"])

    assert existing == ["a", "c"]
    assert requests[0].url.path == "/collections/archive_chunks/points"
    assert json.loads(requests[0].content) == {"ids": ["a", "b", "c"], "with_payload": False, "with_vector": False}


async def test_retrieve_of_nothing_sends_no_request(helper_config) -> None:
    client, requests = await _booted(helper_config, lambda r: httpx.Response(200, json={"result": []}))

    assert await client.do_retrieve([]) == []
    assert requests == []


async def test_scroll_passes_cursor_and_returns_next_one(helper_config) -> None:
    body = {
        "result": {
            "points": [{"id": "p1", "payload": {"document_id": "d1"}}],
            "next_page_offset": "p2",
        },
        "status": "ok",
        "time": 0.01,
    }
    client, requests = await _booted(helper_config, lambda r: httpx.Response(200, json=body))

    page = await client.do_scroll(
        filters=[client.build_match_condition("db", "studio")],
        with_payload=["document_id"],
        with_vector=False,
        limit=100,
        offset="p0",
    )

    assert page.result == body["result"]["points"]
    assert page.next_page_offset == "p2"
    sent = json.loads(requests[0].content)
    assert sent["offset"] == "p0"
    assert sent["limit"] == 100
    assert sent["with_payload"] == ["document_id"]
    assert sent["with_vector"] is False


async def test_first_scroll_page_has_no_offset(helper_config) -> None:
    body = {"result": {"points": [], "next_page_offset": None}}
    client, requests = await _booted(helper_config, lambda r: httpx.Response(200, json=body))

    page = await client.do_scroll(filters=[], with_payload=False, with_vector=False, limit=10)

    assert page.next_page_offset is None
    assert "offset" not in json.loads(requests[0].content)


async def test_delete_by_filter_waits_for_completion(helper_config) -> None:
    client, requests = await _booted(
        helper_config, lambda r: httpx.Response(200, json={"result": {"status": "completed"}})
    )
    delete_filter = client.build_filter([client.build_match_condition("document_id", "d1")])

    await client.do_delete_points_by_filter(delete_filter)

    assert requests[0].url.path == "/collections/archive_chunks/points/delete"
    assert requests[0].url.params["wait"] == "true"
    assert json.loads(requests[0].content) == {"filter": {"must": [{"key": "document_id", "match": {"value": "d1"}}]}}


async def test_existence_check(helper_config) -> None:
    client, _ = await _booted(helper_config, lambda r: httpx.Response(200, json={"result": {"exists": True}}))

    assert await client.do_existence_check() is True


async def test_connection_error_is_store_unavailable(helper_config) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, _ = await _booted(helper_config, refuse)

    with pytest.raises(StoreUnavailable) as exc_info:
        await client.do_count([])
    assert exc_info.value.store == "rag"


async def test_server_error_is_store_unavailable(helper_config) -> None:
    client, _ = await _booted(helper_config, lambda r: httpx.Response(503, text="overloaded"))

    with pytest.raises(StoreUnavailable):
        await client.do_healthcheck()


async def test_client_error_is_a_plain_failure(helper_config) -> None:
    client, _ = await _booted(helper_config, lambda r: httpx.Response(404, json={"status": {"error": "Not found"}}))

    with pytest.raises(Exception) as exc_info:
        await client.do_count([])
    assert not isinstance(exc_info.value, StoreUnavailable)


async def test_request_before_boot_fails(helper_config) -> None:
    client = RAGClientQdrant(helper_config=helper_config)

    with pytest.raises(Exception, match="boot"):
        await client.do_count([])
