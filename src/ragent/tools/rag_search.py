"""Semantic search over ingested documents (the ``rag_search`` tool)."""

import logging
from typing import (
    List,
    Protocol,
)

from ragent.core.schema import (
    RankedPassage,
    ToolCategory,
    ToolDefinition,
    ToolOutcome,
    ToolParameter,
)
from ragent.memory.vector_memory import VectorMemory

logger = logging.getLogger(__name__)


class Retriever(Protocol):
    """Anything that can rank document chunks against a query."""

    def search(self, query: str, top_k: int, tenant_scope: str | None = None) -> List[RankedPassage]:
        ...


class VectorRetriever:
    """:class:`Retriever` backed by the documents collection of a :class:`VectorMemory`."""

    def __init__(self, vector_memory: VectorMemory):
        self._vectors = vector_memory

    def search(self, query: str, top_k: int, tenant_scope: str | None = None) -> List[RankedPassage]:
        hits = self._vectors.query(query, k=top_k, where={"tenant_id": tenant_scope})
        passages: List[RankedPassage] = []
        for hit in hits:
            chunk = hit.metadata.get("chunk_index")
            passages.append(
                RankedPassage(
                    document_id=str(hit.metadata.get("document_id", hit.id)),
                    chunk_index=int(chunk) if chunk is not None else None,
                    score=hit.score,
                    text=hit.text,
                )
            )
        return passages


RAG_SEARCH_DEFINITION = ToolDefinition(
    name="rag_search",
    description=(
        "Search through ingested documents using semantic similarity. "
        "Returns relevant document chunks for a given query."
    ),
    parameters=[
        ToolParameter(name="query", type="string", required=True, description="The search query or question"),
        ToolParameter(
            name="top_k", type="number", default=3, description="Number of results to return (default: 3)"
        ),
        ToolParameter(
            name="min_score", type="number", default=0.0, description="Drop results scoring below this"
        ),
        ToolParameter(name="tenant_id", type="string", description="Tenant ID for multi-tenancy isolation"),
    ],
    category=ToolCategory.RAG,
    tags=["search", "documents", "retrieval"],
)


class RagSearchTool:
    """Callable tool; results carry a ``documents`` list used for citations."""

    definition = RAG_SEARCH_DEFINITION

    def __init__(self, retriever: Retriever):
        self._retriever = retriever

    def __call__(
        self, query: str, top_k: float = 3, min_score: float = 0.0, tenant_id: str | None = None
    ) -> ToolOutcome:
        passages = self._retriever.search(query, int(top_k), tenant_id)
        passages = [p for p in passages if p.score >= min_score]
        logger.info("rag_search '%s' returned %d passages", query, len(passages))

        if not passages:
            return ToolOutcome.ok("No relevant documents found.", {"query": query, "results_count": 0})

        documents = [
            {
                "rank": rank,
                "document_id": p.document_id,
                "chunk_index": p.chunk_index,
                "score": p.score,
                "text": p.text,
            }
            for rank, p in enumerate(passages, start=1)
        ]
        lines = [f"Found {len(documents)} relevant document(s):", ""]
        for doc in documents:
            header = f"[{doc['rank']}] Document: {doc['document_id']}"
            if doc["chunk_index"] is not None:
                header += f" (Chunk {doc['chunk_index']})"
            lines += [header, f"Relevance: {doc['score']:.3f}", f"Content: {doc['text']}", ""]

        return ToolOutcome.ok(
            "\n".join(lines).strip(),
            {"query": query, "results_count": len(documents), "documents": documents},
        )
