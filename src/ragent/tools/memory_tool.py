"""The ``memory`` tool: store and recall tenant-wide memories across sessions."""

import logging
from typing import Callable

from ragent.core.schema import (
    ToolCategory,
    ToolDefinition,
    ToolOutcome,
    ToolParameter,
)
from ragent.memory.memory_store import (
    MemoryStore,
    MemoryType,
)

logger = logging.getLogger(__name__)

ACTIONS = ["store", "search", "get_all", "stats", "clear"]

_GET_ALL_SHOWN = 10
_PREVIEW_CHARS = 100


class MemoryTool:
    definition = ToolDefinition(
        name="memory",
        description=(
            "Store and retrieve information from conversation history across all sessions. "
            "Memory is shared tenant-wide - information stored here persists across conversations "
            "and can be retrieved later. Use this to remember important user preferences, facts "
            "about the user, ongoing tasks, and context."
        ),
        parameters=[
            ToolParameter(
                name="action",
                type="string",
                required=True,
                description="Action to perform: 'store', 'search', 'get_all', 'stats', 'clear'",
                choices=ACTIONS,
            ),
            ToolParameter(
                name="content",
                type="string",
                description="Content to store or search query (required for 'store' and 'search')",
            ),
            ToolParameter(name="tenant_id", type="string", description="Tenant identifier"),
            ToolParameter(
                name="type",
                type="string",
                description="Memory type: 'fact', 'preference', 'task', 'context', 'goal', 'conversation'",
                choices=[t.value for t in MemoryType],
            ),
            ToolParameter(
                name="category",
                type="string",
                description="Memory category for organization (e.g., 'coding', 'preferences', 'personal')",
            ),
            ToolParameter(name="importance", type="number", default=5, description="Importance level (1-10, default: 5)"),
            ToolParameter(
                name="top_k", type="number", default=10, description="Number of memories to return for search (default: 10)"
            ),
        ],
        category=ToolCategory.MEMORY,
        tags=["memory", "persistence"],
    )

    def __init__(self, store: MemoryStore):
        self._store = store

    def __call__(
        self,
        action: str,
        content: str | None = None,
        tenant_id: str | None = None,
        type: str | None = None,  # pylint: disable=redefined-builtin
        category: str | None = None,
        importance: float = 5,
        top_k: float = 10,
    ) -> ToolOutcome:
        tenant = tenant_id or "default"
        memory_type = MemoryType(type) if type else None
        handlers: dict[str, Callable[[], ToolOutcome]] = {
            "store": lambda: self._store_memory(tenant, content, memory_type, category, importance),
            "search": lambda: self._search(tenant, content, memory_type, top_k),
            "get_all": lambda: self._get_all(tenant),
            "stats": lambda: self._stats(tenant),
            "clear": lambda: self._clear(tenant),
        }
        handler = handlers.get(action.lower())
        if handler is None:
            return ToolOutcome.fail(f"Unknown action: {action}. Valid actions: {', '.join(ACTIONS)}")
        return handler()

    # ------------------------------------------------------------------ #
    # Actions
    # ------------------------------------------------------------------ #
    def _store_memory(self, tenant, content, memory_type, category, importance) -> ToolOutcome:
        if not content or not content.strip():
            return ToolOutcome.fail("Content is required for 'store' action")
        record = self._store.store(
            content,
            tenant_id=tenant,
            memory_type=memory_type or MemoryType.FACT,
            category=category or "",
            importance=min(max(int(importance), 1), 10),
        )
        return ToolOutcome.ok(
            f"Memory stored successfully. ID: {record.id}",
            {
                "memory_id": record.id,
                "content": record.content,
                "type": record.type.value,
                "importance": record.importance,
            },
        )

    def _search(self, tenant, query, memory_type, top_k) -> ToolOutcome:
        if not query or not query.strip():
            return ToolOutcome.fail("Content (query) is required for 'search' action")
        results = self._store.search(query, tenant_id=tenant, top_k=int(top_k), memory_type=memory_type)
        if not results:
            return ToolOutcome.ok("No relevant memories found.", {"query": query, "results_count": 0})

        memories = [
            {
                "rank": rank,
                "memory_id": record.id,
                "content": record.content,
                "type": record.type.value,
                "category": record.category,
                "importance": record.importance,
                "relevance": relevance,
                "created": record.created_at.isoformat(),
            }
            for rank, (record, relevance) in enumerate(results, start=1)
        ]
        lines = [f"Found {len(memories)} relevant memory/memories:", ""]
        for mem in memories:
            header = f"[{mem['rank']}] {mem['type']}"
            if mem["category"]:
                header += f" ({mem['category']})"
            lines += [
                header,
                f"Relevance: {mem['relevance']:.3f} | Importance: {mem['importance']}/10",
                f"Content: {mem['content']}",
                f"Created: {mem['created']}",
                "",
            ]
        return ToolOutcome.ok(
            "\n".join(lines).strip(),
            {"query": query, "results_count": len(memories), "memories": memories},
        )

    def _get_all(self, tenant) -> ToolOutcome:
        records = self._store.get_all(tenant_id=tenant)
        if not records:
            return ToolOutcome.ok("No memories found for this user.", {"count": 0})

        memories = [
            {
                "id": r.id,
                "content": r.content if len(r.content) <= _PREVIEW_CHARS else r.content[:_PREVIEW_CHARS] + "...",
                "type": r.type.value,
                "category": r.category,
                "importance": r.importance,
                "created": r.created_at.isoformat(),
            }
            for r in records
        ]
        lines = [f"Total memories: {len(memories)}", ""]
        for mem in memories[:_GET_ALL_SHOWN]:
            header = f"• {mem['type']}"
            if mem["category"]:
                header += f" ({mem['category']})"
            lines += [f"{header} | Importance: {mem['importance']}/10", f"  {mem['content']}", ""]
        if len(memories) > _GET_ALL_SHOWN:
            lines.append(
                f"... and {len(memories) - _GET_ALL_SHOWN} more memories (showing first {_GET_ALL_SHOWN})"
            )
        return ToolOutcome.ok(
            "\n".join(lines).strip(),
            {
                "total_count": len(memories),
                "showing": min(_GET_ALL_SHOWN, len(memories)),
                "memories": memories,
            },
        )

    def _stats(self, tenant) -> ToolOutcome:
        stats = self._store.stats(tenant_id=tenant)
        if stats.total_count == 0:
            return ToolOutcome.ok("No memory statistics available (no memories stored).", {"total_count": 0})

        lines = [
            f"Memory Statistics for tenant {tenant}:",
            "",
            f"Total Memories: {stats.total_count}",
            f"Average Importance: {stats.average_importance:.1f}/10",
            f"Oldest Memory: {stats.oldest.isoformat() if stats.oldest else '-'}",
            f"Newest Memory: {stats.newest.isoformat() if stats.newest else '-'}",
            "",
            "By Type:",
        ]
        for name, count in sorted(stats.by_type.items(), key=lambda kv: kv[1], reverse=True):
            lines.append(f"  • {name}: {count}")
        return ToolOutcome.ok(
            "\n".join(lines).strip(),
            {
                "total_count": stats.total_count,
                "by_type": stats.by_type,
                "average_importance": stats.average_importance,
            },
        )

    def _clear(self, tenant) -> ToolOutcome:
        count = self._store.clear(tenant_id=tenant)
        return ToolOutcome.ok(
            f"Cleared {count} memories for tenant {tenant}.", {"cleared_count": count, "tenant_id": tenant}
        )
