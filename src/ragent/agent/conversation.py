"""Append-only conversation log for a single orchestration run."""

import json
from typing import (
    Iterable,
    Iterator,
    List,
    Set,
    Tuple,
)

from ragent.core.schema import (
    AssistantText,
    Message,
    ToolCallIssued,
    ToolCallRequest,
    ToolOutcome,
    ToolResultReceived,
    UserText,
)


class ConversationOrderError(ValueError):
    """Raised when a tool result would precede (or lack) its matching tool call."""


class Conversation:
    """
    Ordered log of user turns, assistant turns, tool calls and tool results.

    Messages can only be appended.  A ``ToolResultReceived`` is accepted only after the
    ``ToolCallIssued`` carrying the same ``call_id`` and at most once per call.
    """

    def __init__(self, history: Iterable[Message] = ()) -> None:
        self._messages: List[Message] = []
        self._issued: Set[str] = set()
        self._resolved: Set[str] = set()
        for message in history:
            self.append(message)

    # ------------------------------------------------------------------ #
    # Mutation (append only)
    # ------------------------------------------------------------------ #
    def append(self, message: Message) -> None:
        if isinstance(message, ToolCallIssued):
            call_id = message.request.call_id
            if call_id in self._issued:
                raise ConversationOrderError(f"Tool call {call_id} was issued twice")
            self._issued.add(call_id)
        elif isinstance(message, ToolResultReceived):
            call_id = message.request.call_id
            if call_id not in self._issued:
                raise ConversationOrderError(
                    f"Result for tool call {call_id} appeared before the call was issued"
                )
            if call_id in self._resolved:
                raise ConversationOrderError(f"Tool call {call_id} already has a result")
            self._resolved.add(call_id)
        self._messages.append(message)

    def add_user(self, text: str) -> None:
        self.append(UserText(content=text))

    def add_assistant(self, text: str) -> None:
        self.append(AssistantText(content=text))

    def add_tool_exchange(self, request: ToolCallRequest, outcome: ToolOutcome) -> None:
        """Append the ``ToolCallIssued`` / ``ToolResultReceived`` pair for one call."""
        self.append(ToolCallIssued(request=request))
        self.append(ToolResultReceived(request=request, outcome=outcome))

    # ------------------------------------------------------------------ #
    # Read access
    # ------------------------------------------------------------------ #
    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    def tool_results(self) -> List[ToolResultReceived]:
        return [m for m in self._messages if isinstance(m, ToolResultReceived)]

    def pending_calls(self) -> Set[str]:
        """Call ids that were issued but never received a result."""
        return self._issued - self._resolved

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)


def render_transcript(messages: Iterable[Message]) -> str:
    """Flatten *messages* into the plain-text transcript planners send to the model."""
    lines: List[str] = []
    for msg in messages:
        if isinstance(msg, UserText):
            lines.append(f"User: {msg.content}")
        elif isinstance(msg, AssistantText):
            lines.append(f"Assistant: {msg.content}")
        elif isinstance(msg, ToolCallIssued):
            args = json.dumps(msg.request.arguments, default=str, ensure_ascii=False)
            lines.append(f"Tool Call [{msg.request.tool_name}]: {args}")
        elif isinstance(msg, ToolResultReceived):
            lines.append(f"Tool Result [{msg.request.tool_name}]: {msg.outcome.as_text()}")
    return "\n".join(lines).strip()
