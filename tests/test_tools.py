"""Built-in tools against in-memory stores and mocked HTTP."""

import httpx
import pytest

from ragent.core.schema import RankedPassage
from ragent.memory.memory_store import (
    MemoryStore,
    MemoryType,
)
from ragent.memory.vector_memory import (
    VectorHit,
    VectorMemory,
    build_where,
)
from ragent.tools.builtin import build_default_registry
from ragent.tools.github_search import (
    GitHubSearchCodeTool,
    GitHubSearchRepositoriesTool,
)
from ragent.tools.memory_tool import MemoryTool
from ragent.tools.rag_search import (
    RagSearchTool,
    VectorRetriever,
)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakeVectorMemory:
    """Dict-backed stand-in for VectorMemory; substring matches score 1.0, others 0.5."""

    def __init__(self):
        self.docs = {}

    def _matches(self, meta, where):
        return all(meta.get(k) == v for k, v in (where or {}).items() if v is not None)

    def add(self, doc_id, text, metadata=None):
        self.docs[doc_id] = (text, dict(metadata or {}))

    def query(self, text, k=5, where=None):
        hits = [
            VectorHit(id=i, text=t, metadata=m, score=1.0 if text.lower() in t.lower() else 0.5)
            for i, (t, m) in self.docs.items()
            if self._matches(m, where)
        ]
        return sorted(hits, key=lambda h: h.score, reverse=True)[:k]

    def get(self, where=None, limit=None):
        hits = [VectorHit(id=i, text=t, metadata=m) for i, (t, m) in self.docs.items() if self._matches(m, where)]
        return hits[:limit] if limit else hits

    def delete(self, ids):
        for i in ids:
            self.docs.pop(i, None)


class FakeRetriever:
    def __init__(self, passages):
        self.passages = passages
        self.calls = []

    def search(self, query, top_k, tenant_scope=None):
        self.calls.append((query, top_k, tenant_scope))
        return self.passages[:top_k]


class FakeCollection:
    def __init__(self, query_result=None):
        self.upserts = []
        self.queries = []
        self.query_result = query_result or {"ids": [[]]}

    def upsert(self, **kwargs):
        self.upserts.append(kwargs)

    def query(self, **kwargs):
        self.queries.append(kwargs)
        return self.query_result

    def count(self):
        return len(self.upserts)


class FakeChromaClient:
    def __init__(self, collection):
        self.collection = collection
        self.deleted = []

    def delete_collection(self, name):
        self.deleted.append(name)

    def get_or_create_collection(self, name, embedding_function):
        return self.collection


# ---------------------------------------------------------------------------
# Vector memory
# ---------------------------------------------------------------------------
def test_build_where() -> None:
    """None values are dropped; several clauses are joined with $and."""

    assert build_where(None) is None
    assert build_where({"tenant_id": None}) is None
    assert build_where({"tenant_id": "t"}) == {"tenant_id": "t"}
    assert build_where({"a": 1, "b": 2}) == {"$and": [{"a": 1}, {"b": 2}]}


def test_vector_memory_scores_and_metadata() -> None:
    """Distances are turned into scores and None metadata is not sent to Chroma."""

    collection = FakeCollection(
        {
            "ids": [["d1", "d2"]],
            "documents": [["one", "two"]],
            "metadatas": [[{"document_id": "A"}, None]],
            "distances": [[0.1, 0.4]],
        }
    )
    client = FakeChromaClient(collection)
    memory = VectorMemory("docs", persist=False, client=client, embedding_function=object())

    memory.add("d1", "one", {"document_id": "A", "tenant_id": None})
    hits = memory.query("o", k=2, where={"tenant_id": "t"})

    assert client.deleted == ["docs"]
    assert collection.upserts[0]["metadatas"] == [{"document_id": "A"}]
    assert collection.queries[0]["where"] == {"tenant_id": "t"}
    assert [(h.id, round(h.score, 2)) for h in hits] == [("d1", 0.9), ("d2", 0.6)]
    assert hits[1].metadata == {}


def test_vector_retriever_maps_metadata() -> None:
    """Chunks become ranked passages keyed by their source document."""

    vectors = FakeVectorMemory()
    vectors.add("c1", "alpha text", {"document_id": "doc-A", "chunk_index": 4, "tenant_id": "t1"})
    vectors.add("c2", "alpha other", {"document_id": "doc-B", "chunk_index": 0, "tenant_id": "t2"})

    passages = VectorRetriever(vectors).search("alpha", 5, tenant_scope="t1")
    assert passages == [RankedPassage(document_id="doc-A", chunk_index=4, score=1.0, text="alpha text")]


# ---------------------------------------------------------------------------
# rag_search
# ---------------------------------------------------------------------------
def test_rag_search_formats_documents() -> None:
    """Results carry a documents list and honour min_score."""

    retriever = FakeRetriever(
        [
            RankedPassage(document_id="A", chunk_index=1, score=0.9, text="first"),
            RankedPassage(document_id="B", chunk_index=None, score=0.2, text="weak"),
        ]
    )
    outcome = RagSearchTool(retriever)(query="q", top_k=2, min_score=0.5, tenant_id="acme")

    assert retriever.calls == [("q", 2, "acme")]
    assert outcome.success is True
    assert outcome.structured_data["results_count"] == 1
    assert outcome.structured_data["documents"][0]["document_id"] == "A"
    assert "[1] Document: A (Chunk 1)" in outcome.content
    assert "Relevance: 0.900" in outcome.content


def test_rag_search_no_results() -> None:
    """An empty result is still a success."""

    outcome = RagSearchTool(FakeRetriever([]))(query="q")
    assert outcome.content == "No relevant documents found."
    assert outcome.structured_data == {"query": "q", "results_count": 0}


# ---------------------------------------------------------------------------
# memory
# ---------------------------------------------------------------------------
@pytest.fixture
def memory_tool(tmp_path) -> MemoryTool:
    store = MemoryStore(FakeVectorMemory(), log_path=tmp_path / "memories.jsonl")
    store.init()
    return MemoryTool(store)


def test_memory_store_and_search(memory_tool: MemoryTool) -> None:
    """Stored memories can be found again within the same tenant only."""

    stored = memory_tool(action="store", content="User prefers Python", tenant_id="t1", type="preference")
    assert stored.success is True
    assert stored.content.startswith("Memory stored successfully. ID: ")
    assert stored.structured_data["type"] == "preference"

    found = memory_tool(action="search", content="python", tenant_id="t1")
    assert found.structured_data["results_count"] == 1
    assert found.structured_data["memories"][0]["content"] == "User prefers Python"

    other = memory_tool(action="search", content="python", tenant_id="t2")
    assert other.content == "No relevant memories found."


def test_memory_get_all_stats_and_clear(memory_tool: MemoryTool, tmp_path) -> None:
    """get_all, stats and clear operate on one tenant."""

    for i in range(3):
        memory_tool(action="store", content=f"fact {i}", tenant_id="t1", importance=4 + i)
    memory_tool(action="store", content="goal", tenant_id="t1", type="goal", importance=9)

    listing = memory_tool(action="get_all", tenant_id="t1")
    assert listing.structured_data["total_count"] == 4

    stats = memory_tool(action="stats", tenant_id="t1")
    assert stats.structured_data["by_type"] == {"fact": 3, "goal": 1}
    assert stats.structured_data["average_importance"] == pytest.approx(6.0)

    cleared = memory_tool(action="clear", tenant_id="t1")
    assert cleared.structured_data["cleared_count"] == 4
    assert memory_tool(action="stats", tenant_id="t1").structured_data == {"total_count": 0}

    log_lines = (tmp_path / "memories.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(log_lines) == 5


def test_memory_requires_content(memory_tool: MemoryTool) -> None:
    """store and search need content; unknown actions fail."""

    assert memory_tool(action="store").success is False
    assert memory_tool(action="search", content="  ").success is False
    assert "Unknown action" in memory_tool(action="forget").error


def test_memory_store_defaults(memory_tool: MemoryTool) -> None:
    """Without a tenant the default tenant is used; importance is clamped."""

    outcome = memory_tool(action="store", content="x", importance=42)
    assert outcome.structured_data["importance"] == 10
    assert outcome.structured_data["type"] == MemoryType.FACT.value


# ---------------------------------------------------------------------------
# GitHub
# ---------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_github_repository_search() -> None:
    """Query parameters and auth header are sent; items are summarised."""

    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "full_name": "chroma-core/chroma",
                        "description": "the AI-native database",
                        "stargazers_count": 100,
                        "forks_count": 7,
                        "language": "Rust",
                        "html_url": "https://github.com/chroma-core/chroma",
                        "updated_at": "2024-01-01T00:00:00Z",
                    }
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tool = GitHubSearchRepositoriesTool(token="tok", base_url="https://api.test", client=client)
        outcome = await tool(query="vector database", sort="forks", max_results=3)

    assert seen == {
        "path": "/search/repositories",
        "params": {"q": "vector database", "sort": "forks", "per_page": "3"},
        "auth": "Bearer tok",
    }
    assert outcome.structured_data["count"] == 1
    assert "**chroma-core/chroma** (⭐ 100)" in outcome.content


@pytest.mark.asyncio
async def test_github_code_search_language_filter() -> None:
    """The language filter is folded into the query."""

    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["q"] = request.url.params["q"]
        return httpx.Response(
            200,
            json={
                "items": [
                    {
                        "name": "loop.py",
                        "path": "src/loop.py",
                        "repository": {"full_name": "a/b"},
                        "html_url": "https://github.com/a/b/blob/main/src/loop.py",
                    }
                ]
            },
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tool = GitHubSearchCodeTool(token="", base_url="https://api.test", client=client)
        outcome = await tool(query="async await", language="python")

    assert seen["q"] == "async await language:python"
    assert outcome.structured_data["results"][0]["repository"] == "a/b"


@pytest.mark.asyncio
async def test_github_http_error_is_a_failed_outcome() -> None:
    """Rate limiting and other HTTP errors are reported, not raised."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(403, json={"message": "rate limited"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        tool = GitHubSearchRepositoriesTool(token="", base_url="https://api.test", client=client)
        outcome = await tool(query="x")

    assert outcome.success is False
    assert outcome.error.startswith("GitHub API error")


# ---------------------------------------------------------------------------
# Default registry
# ---------------------------------------------------------------------------
def test_default_registry(tmp_path) -> None:
    """All built-in tools are registered with their categories."""

    registry = build_default_registry(
        retriever=FakeRetriever([]),
        memory_store=MemoryStore(FakeVectorMemory(), log_path=tmp_path / "m.jsonl"),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))),
    )
    assert [d.name for d in registry.list()] == [
        "rag_search",
        "github_search_repositories",
        "github_search_code",
        "memory",
    ]
    assert registry.get_definition("memory").parameter("tenant_id") is not None
