"""Citation extraction from retrieval outcomes and highest-score-wins deduplication."""

from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
)

from ragent.core.schema import (
    Citation,
    ToolOutcome,
)


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def retrieved_documents(outcome: ToolOutcome) -> List[Mapping[str, Any]]:
    """The ``documents`` list of a successful retrieval outcome, or ``[]``."""
    if not outcome.success or not outcome.structured_data:
        return []
    docs = outcome.structured_data.get("documents")
    if not isinstance(docs, list):
        return []
    return [d for d in docs if isinstance(d, Mapping)]


def extract_citations(outcome: ToolOutcome) -> List[Citation]:
    """Turn the documents of a retrieval outcome into citations.  Entries without an id are skipped."""
    citations: List[Citation] = []
    for doc in retrieved_documents(outcome):
        document_id = doc.get("document_id")
        if not document_id:
            continue
        chunk = doc.get("chunk_index", doc.get("page"))
        citations.append(
            Citation(
                document_id=str(document_id),
                chunk_index=_as_int(chunk),
                score=_as_float(doc.get("score")),
                text=doc.get("text"),
            )
        )
    return citations


def dedupe_citations(citations: Iterable[Citation]) -> List[Citation]:
    """
    Keep one citation per (document, chunk) key.

    The higher score wins (never averaged); on equal scores the first seen is kept.  The result is
    ordered by score, highest first.
    """
    best: Dict[Tuple[str, Optional[int]], Citation] = {}
    for citation in citations:
        current = best.get(citation.key)
        if current is None or citation.score > current.score:
            best[citation.key] = citation
    return sorted(best.values(), key=lambda c: c.score, reverse=True)
