"""GitHub repository and code search tools (REST search API via httpx)."""

import logging
from typing import (
    Any,
    Dict,
    List,
)

import httpx

from ragent.config import settings
from ragent.core.schema import (
    ToolCategory,
    ToolDefinition,
    ToolOutcome,
    ToolParameter,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "ragent"


def _headers(token: str | None) -> Dict[str, str]:
    headers = {"User-Agent": _USER_AGENT, "Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


class _GitHubTool:
    """Shared HTTP plumbing.  *client* can be injected (tests use ``httpx.MockTransport``)."""

    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 15.0,
    ):
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self._base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self._client = client
        self._timeout = timeout

    async def _search(self, kind: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}/search/{kind}"
        if self._client is not None:
            resp = await self._client.get(url, params=params, headers=_headers(self._token))
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params=params, headers=_headers(self._token))
        resp.raise_for_status()
        return resp.json()


class GitHubSearchRepositoriesTool(_GitHubTool):
    definition = ToolDefinition(
        name="github_search_repositories",
        description=(
            "Search for GitHub repositories by query. "
            "Returns repository names, descriptions, and metadata."
        ),
        parameters=[
            ToolParameter(
                name="query",
                type="string",
                required=True,
                description="Search query (e.g., 'vector database', 'machine learning python')",
            ),
            ToolParameter(
                name="sort",
                type="string",
                default="stars",
                description="Sort by: stars, forks, updated (default: stars)",
                choices=["stars", "forks", "updated"],
            ),
            ToolParameter(
                name="max_results", type="number", default=5, description="Maximum number of results (default: 5)"
            ),
        ],
        category=ToolCategory.GITHUB,
        tags=["github", "repositories", "search"],
    )

    async def __call__(self, query: str, sort: str = "stars", max_results: float = 5) -> ToolOutcome:
        try:
            data = await self._search(
                "repositories", {"q": query, "sort": sort, "per_page": int(max_results)}
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("GitHub repository search failed: %s", exc)
            return ToolOutcome.fail(f"GitHub API error: {exc}")

        items = data.get("items")
        if not isinstance(items, list):
            return ToolOutcome.fail("Invalid response from GitHub API")

        repositories: List[Dict[str, Any]] = [
            {
                "name": item.get("full_name"),
                "description": item.get("description") or "",
                "stars": item.get("stargazers_count", 0),
                "forks": item.get("forks_count", 0),
                "language": item.get("language") or "Unknown",
                "url": item.get("html_url"),
                "updated_at": item.get("updated_at"),
            }
            for item in items
        ]
        lines = [f"Found {len(repositories)} repositories:", ""]
        for i, repo in enumerate(repositories, start=1):
            lines += [
                f"{i}. **{repo['name']}** (⭐ {repo['stars']})",
                f"   {repo['description']}",
                f"   Language: {repo['language']} | Forks: {repo['forks']}",
                f"   URL: {repo['url']}",
                "",
            ]
        return ToolOutcome.ok(
            "\n".join(lines).strip(),
            {"query": query, "count": len(repositories), "repositories": repositories},
        )


class GitHubSearchCodeTool(_GitHubTool):
    definition = ToolDefinition(
        name="github_search_code",
        description="Search for code snippets across GitHub. Useful for finding examples and implementations.",
        parameters=[
            ToolParameter(
                name="query",
                type="string",
                required=True,
                description="Code search query (e.g., 'vector database embedding', 'async await pattern')",
            ),
            ToolParameter(name="language", type="string", description="Programming language filter (optional)"),
            ToolParameter(
                name="max_results", type="number", default=5, description="Maximum number of results (default: 5)"
            ),
        ],
        category=ToolCategory.GITHUB,
        tags=["github", "code", "search"],
    )

    async def __call__(self, query: str, language: str | None = None, max_results: float = 5) -> ToolOutcome:
        q = f"{query} language:{language}" if language else query
        try:
            data = await self._search("code", {"q": q, "per_page": int(max_results)})
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("GitHub code search failed: %s", exc)
            return ToolOutcome.fail(f"GitHub API error: {exc}")

        items = data.get("items")
        if not isinstance(items, list):
            return ToolOutcome.fail("Invalid response from GitHub API")

        results = [
            {
                "name": item.get("name"),
                "path": item.get("path"),
                "repository": (item.get("repository") or {}).get("full_name"),
                "url": item.get("html_url"),
            }
            for item in items
        ]
        lines = [f"Found {len(results)} code snippet(s):", ""]
        for i, code in enumerate(results, start=1):
            lines += [
                f"{i}. **{code['name']}**",
                f"   Repository: {code['repository']}",
                f"   Path: {code['path']}",
                f"   URL: {code['url']}",
                "",
            ]
        return ToolOutcome.ok(
            "\n".join(lines).strip(), {"query": query, "count": len(results), "results": results}
        )
