"""CLI client for the ragent API."""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import (
    Any,
    Dict,
    Tuple,
    cast,
)

import httpx

from ragent.config import settings

logger = logging.getLogger(__name__)


class AnsiColors(Enum):
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """Print *text* in *color*; extra arguments are passed on to :func:`print`."""
    print(f"{color.value}{text}\033[0m", *args, **kwargs)  # ANSI reset at the end


# ---------------------------------------------------------------------------
# CLI Client
# ---------------------------------------------------------------------------
def get_user_message() -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    import signal  # pylint: disable=import-outside-toplevel

    # Ensure SIGINT breaks out of slow system calls such as read()
    signal.siginterrupt(signal.SIGINT, True)

    try:
        user_input = input().strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def call_api(
    endpoint: str,
    data: Dict[str, Any],
    max_retries: int = 5,
    headers: Dict[str, str] | None = None,
    client: httpx.Client | None = None,
) -> Dict[str, Any]:
    """Make a POST request to the API and return the response with retries."""
    api_url = f"http://localhost:{settings.API_PORT}{endpoint}"
    http = client or httpx.Client(timeout=120.0)

    try:
        for attempt in range(max_retries):
            try:
                response = http.post(api_url, json=data, headers=headers)
                response.raise_for_status()
                return cast(Dict[str, Any], response.json())
            except httpx.ConnectError as e:
                if attempt == max_retries - 1:
                    logger.error("API request error: %s", e)
                    break
                # exponential backoff: 0.5s, 1s, 2s, 4s...
                retry_delay = 0.5 * (2**attempt)
                logger.info(
                    "API not ready yet, retrying in %.1f seconds (attempt %d/%d)...",
                    retry_delay,
                    attempt + 1,
                    max_retries,
                )
                time.sleep(retry_delay)
            except httpx.HTTPStatusError as e:
                logger.error("API request error: %s", e)
                detail = str(e)
                try:
                    detail = e.response.json().get("detail", detail)
                except ValueError:
                    pass
                return {"error": f"API error: {detail}"}
            except httpx.HTTPError as e:
                logger.error("API request error: %s", e)
                return {"error": f"Error connecting to API: {e}"}
    finally:
        if client is None:
            http.close()

    return {"error": f"Failed to connect to API after {max_retries} attempts"}


def render_response(response: Dict[str, Any]) -> None:
    """Print tool calls, citations and the answer of one chat response."""
    if "error" in response:
        colored_print(response["error"], AnsiColors.RED)
        return

    for call in response.get("tool_calls") or []:
        colored_print(f"[{call['tool_name']}] {call.get('arguments', {})}", AnsiColors.GREEN)

    colored_print(response.get("answer") or "No response from API", AnsiColors.YELLOW)

    citations = response.get("citations") or []
    if citations:
        colored_print("Sources:", AnsiColors.GREY)
        for c in citations:
            chunk = f"#{c['chunk_index']}" if c.get("chunk_index") is not None else ""
            colored_print(f"  - {c['document_id']}{chunk} ({c['score']:.2f})", AnsiColors.GREY)

    metrics = response.get("metrics") or {}
    if metrics:
        colored_print(
            f"({metrics.get('iteration_count', 0)} iterations, "
            f"{metrics.get('tool_calls_count', 0)} tool calls, "
            f"${metrics.get('estimated_cost', 0.0):.4f})",
            AnsiColors.GREY,
        )


def run_cli(tenant_id: str | None = None) -> None:
    """Run the CLI client that communicates with the API."""
    session_response = call_api("/sessions", {})
    session_id = session_response.get("session_id")

    if not session_id:
        colored_print("⚠️ Failed to create a session", AnsiColors.RED)
        return

    headers = {"X-Tenant-Id": tenant_id} if tenant_id else None
    colored_print("\n🔮 ragent shell - type 'exit' or 'quit' (or Ctrl+C) to exit", AnsiColors.GREEN)
    while True:
        colored_print("\n🧑 You: ", AnsiColors.BLUE, end="")
        user_msg, ok = get_user_message()
        if not ok:
            break  # Exit if user input couldn't be retrieved (e.g., Ctrl+C)
        if user_msg.lower() in {"exit", "quit"}:
            break
        if not user_msg:
            continue

        response = call_api(
            "/agent/chat", {"message": user_msg, "session_id": session_id}, headers=headers
        )
        render_response(response)


if __name__ == "__main__":
    run_cli()
