"""Long-term, tenant-wide memories in the vector DB + lightweight JSON log."""

import json
import logging
import uuid
from collections import Counter
from datetime import (
    datetime,
    timezone,
)
from enum import Enum
from pathlib import Path
from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

from pydantic import (
    BaseModel,
    Field,
)

from ragent.memory.vector_memory import (
    VectorHit,
    VectorMemory,
)

logger = logging.getLogger(__name__)


class MemoryType(str, Enum):
    FACT = "fact"
    PREFERENCE = "preference"
    TASK = "task"
    CONTEXT = "context"
    GOAL = "goal"
    CONVERSATION = "conversation"


class MemoryRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    content: str
    tenant_id: str = "default"
    type: MemoryType = MemoryType.FACT
    category: str = ""
    importance: int = Field(5, ge=1, le=10)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_metadata(self) -> Dict[str, object]:
        return {
            "tenant_id": self.tenant_id,
            "type": self.type.value,
            "category": self.category,
            "importance": self.importance,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_hit(cls, hit: VectorHit) -> "MemoryRecord":
        meta = hit.metadata
        return cls(
            id=hit.id,
            content=hit.text,
            tenant_id=str(meta.get("tenant_id", "default")),
            type=MemoryType(meta.get("type", MemoryType.FACT.value)),
            category=str(meta.get("category", "")),
            importance=int(meta.get("importance", 5)),
            created_at=meta.get("created_at") or datetime.now(timezone.utc),
        )


class MemoryStats(BaseModel):
    total_count: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    average_importance: float = 0.0
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None


class MemoryStore:
    """
    Tenant-scoped memory persisted two ways:

    1. Vector DB, for similarity search.
    2. A flat-file audit trail (JSON lines) of every store / clear.
    """

    def __init__(self, vector_memory: VectorMemory, log_path: Path | str | None = None):
        self._vectors = vector_memory
        self._log_path = Path(log_path) if log_path else None

    def init(self) -> None:
        """Ensure the audit log exists.  Called at application startup."""
        if self._log_path is None:
            return
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        if not self._log_path.exists():
            self._log_path.touch()

    def _audit(self, event: str, payload: dict) -> None:
        if self._log_path is None:
            return
        with self._log_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps({"event": event, **payload}, default=str) + "\n")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def store(
        self,
        content: str,
        tenant_id: str = "default",
        memory_type: MemoryType = MemoryType.FACT,
        category: str = "",
        importance: int = 5,
    ) -> MemoryRecord:
        record = MemoryRecord(
            content=content,
            tenant_id=tenant_id,
            type=memory_type,
            category=category,
            importance=importance,
        )
        self._vectors.add(record.id, record.content, metadata=record.to_metadata())
        self._audit("store", {"memory": record.model_dump(mode="json")})
        logger.info("Stored memory %s for tenant '%s'", record.id, tenant_id)
        return record

    def search(
        self,
        query: str,
        tenant_id: str = "default",
        top_k: int = 10,
        memory_type: MemoryType | None = None,
    ) -> List[Tuple[MemoryRecord, float]]:
        """Memories most similar to *query*, each with its relevance score."""
        where = {"tenant_id": tenant_id, "type": memory_type.value if memory_type else None}
        hits = self._vectors.query(query, k=top_k, where=where)
        return [(MemoryRecord.from_hit(hit), hit.score) for hit in hits]

    def get_all(self, tenant_id: str = "default", limit: int = 50) -> List[MemoryRecord]:
        """Newest first."""
        records = [MemoryRecord.from_hit(h) for h in self._vectors.get(where={"tenant_id": tenant_id})]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records[:limit]

    def stats(self, tenant_id: str = "default") -> MemoryStats:
        records = [MemoryRecord.from_hit(h) for h in self._vectors.get(where={"tenant_id": tenant_id})]
        if not records:
            return MemoryStats()
        created = [r.created_at for r in records]
        return MemoryStats(
            total_count=len(records),
            by_type=dict(Counter(r.type.value for r in records)),
            average_importance=sum(r.importance for r in records) / len(records),
            oldest=min(created),
            newest=max(created),
        )

    def clear(self, tenant_id: str = "default") -> int:
        """Delete every memory of *tenant_id*; returns how many were removed."""
        ids = [h.id for h in self._vectors.get(where={"tenant_id": tenant_id})]
        self._vectors.delete(ids)
        self._audit("clear", {"tenant_id": tenant_id, "count": len(ids)})
        logger.info("Cleared %d memories for tenant '%s'", len(ids), tenant_id)
        return len(ids)
