"""
Thin wrapper around Chroma for storing & querying text chunks.

Two collections are used by ragent:
  documents = ingested document chunks, metadata ``{"document_id", "chunk_index", "tenant_id"}``
  memories  = long-term memories written by the memory tool

Chroma reports a distance; hits expose ``score = 1 - distance`` so higher is better.
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    Optional,
    cast,
)

import chromadb
from chromadb.api.types import EmbeddingFunction
from chromadb.utils import embedding_functions
from pydantic import (
    BaseModel,
    Field,
)

from ragent.config import settings

logger = logging.getLogger(__name__)


class VectorHit(BaseModel):
    """One stored chunk, optionally scored against a query."""

    id: str
    text: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    score: float = 0.0


def build_where(filters: Dict[str, Any] | None) -> Optional[Dict[str, Any]]:
    """Turn a flat equality filter into a Chroma ``where`` clause (``None`` when empty)."""
    clauses = {k: v for k, v in (filters or {}).items() if v is not None}
    if not clauses:
        return None
    if len(clauses) == 1:
        return clauses
    return {"$and": [{k: v} for k, v in clauses.items()]}


class VectorMemory:
    """
    Chroma wrapper for storing & querying text chunks.

    *client* and *embedding_function* can be injected; by default an HTTP client to the configured
    Chroma server and a SentenceTransformer embedding (CPU-only, small model) are used.
    """

    def __init__(
        self,
        collection_name: str | None = None,
        persist: bool = True,
        host: str | None = None,
        port: int | None = None,
        client: Any = None,
        embedding_function: EmbeddingFunction | None = None,
    ):
        self.collection_name = collection_name or settings.DOCUMENTS_COLLECTION
        if client is None:
            client = chromadb.HttpClient(
                host=host or settings.VECTOR_DB_HOST, port=port or settings.VECTOR_DB_PORT
            )
        self._client = client
        if embedding_function is None:
            embedding_function = embedding_functions.SentenceTransformerEmbeddingFunction(
                model_name=settings.EMBED_MODEL
            )
        self._embed_fn = embedding_function

        if not persist:
            # Start from an empty collection
            try:
                self._client.delete_collection(self.collection_name)
                logger.info(
                    "Deleted existing collection '%s' (non-persistent mode)", self.collection_name
                )
            except Exception as e:  # pylint: disable=broad-except
                # Collection might not exist yet, which is fine
                logger.debug("Could not delete collection '%s': %s", self.collection_name, str(e))

        self._col = self._client.get_or_create_collection(
            name=self.collection_name, embedding_function=cast(EmbeddingFunction, self._embed_fn)
        )

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def add(self, doc_id: str, text: str, metadata: dict | None = None) -> None:
        """Add or upsert a single document."""
        # Chroma rejects None values and empty metadata dicts
        clean = {k: v for k, v in (metadata or {}).items() if v is not None}
        if clean:
            self._col.upsert(ids=[doc_id], documents=[text], metadatas=[clean])
        else:
            self._col.upsert(ids=[doc_id], documents=[text])

    def query(self, text: str, k: int = 5, where: Dict[str, Any] | None = None) -> List[VectorHit]:
        """Return the top-*k* chunks similar to *text*, best first."""
        res = self._col.query(
            query_texts=[text],
            n_results=k,
            where=build_where(where),
            include=["documents", "metadatas", "distances"],
        )
        logger.debug("Vector query on '%s' returned: %s", self.collection_name, res)
        if not res or not res.get("ids") or not res["ids"][0]:
            return []

        ids = res["ids"][0]
        documents = (res.get("documents") or [[]])[0] or [""] * len(ids)
        metadatas = (res.get("metadatas") or [[]])[0] or [{}] * len(ids)
        distances = (res.get("distances") or [[]])[0] or [1.0] * len(ids)
        return [
            VectorHit(id=i, text=doc or "", metadata=dict(meta or {}), score=1.0 - float(dist))
            for i, doc, meta, dist in zip(ids, documents, metadatas, distances)
        ]

    def get(self, where: Dict[str, Any] | None = None, limit: int | None = None) -> List[VectorHit]:
        """Fetch stored chunks matching *where*, without scoring."""
        res = self._col.get(
            where=build_where(where), limit=limit, include=["documents", "metadatas"]
        )
        ids = res.get("ids") or []
        documents = res.get("documents") or [""] * len(ids)
        metadatas = res.get("metadatas") or [{}] * len(ids)
        return [
            VectorHit(id=i, text=doc or "", metadata=dict(meta or {}))
            for i, doc, meta in zip(ids, documents, metadatas)
        ]

    def delete(self, ids: List[str]) -> None:
        if ids:
            self._col.delete(ids=ids)

    # Convenience for tests / admin
    def count(self) -> int:
        """Return number of documents in the collection."""
        return self._col.count()
