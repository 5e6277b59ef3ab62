"""
Context building - turns stored chat history into an indexed transcript.

Every entry the model sees is formatted as::

    {index}|{display_name}|{content}

and a reply is preceded by the quoted message on its own line::

    > {quoted_index}|{quoted_display_name}|{preview}
    {index}|{display_name}|{content}

Indices are 1-based, contiguous and assigned per build. They are never
persisted; the index map in the result resolves them back to message ids.
"""

import json
from dataclasses import dataclass, field
from typing import Callable

import structlog

from ..llm.base import LLMMessage, ToolCall
from ..llm.tokens import estimate_message_tokens
from ..models import Summary, ToolRecord
from ..store import AgentStore, ContextMessage

logger = structlog.get_logger()

PREVIEW_MAX_CHARS = 50
PREVIEW_CUT_CHARS = 47

SUMMARY_HEADER = "[Previous conversation summary]"

GROUP_CHAT_SUFFIXES = ("@g.us", "@broadcast", "@newsletter")


def is_direct_chat(chat_id: str) -> bool:
    """True for one-to-one chats, judged by the chat id's server suffix."""
    return not chat_id.endswith(GROUP_CHAT_SUFFIXES)


def truncate_preview(text: str) -> str:
    """Shorten quoted content to at most 50 characters."""
    if len(text) > PREVIEW_MAX_CHARS:
        return text[:PREVIEW_CUT_CHARS] + "..."
    return text


@dataclass
class InputMessage:
    """The message being answered, possibly not yet persisted."""

    id: str
    chat_id: str
    sender_id: str
    text: str
    push_name: str = ""
    quoted_message_id: str = ""
    quoted_sender_id: str = ""
    quoted_content: str = ""


@dataclass
class ContextResult:
    """A bounded transcript for one processing attempt."""

    messages: list[LLMMessage] = field(default_factory=list)
    token_count: int = 0
    index_map: dict[int, str] = field(default_factory=dict)
    next_index: int = 1


@dataclass
class _BuildState:
    """Per-build naming and index bookkeeping. Discarded after the build."""

    is_dm: bool
    index_map: dict[int, str] = field(default_factory=dict)
    id_to_index: dict[str, int] = field(default_factory=dict)
    names: dict[int, str] = field(default_factory=dict)
    contents: dict[int, str] = field(default_factory=dict)
    sender_names: dict[str, str] = field(default_factory=dict)
    user_numbers: dict[str, int] = field(default_factory=dict)

    @property
    def next_index(self) -> int:
        return len(self.index_map) + 1

    def user_number(self, sender_id: str) -> int:
        """Stable User{N} number, in order of first appearance."""
        if sender_id not in self.user_numbers:
            self.user_numbers[sender_id] = len(self.user_numbers) + 1
        return self.user_numbers[sender_id]

    def claim(self, message_id: str, name: str, content: str) -> int:
        index = self.next_index
        self.index_map[index] = message_id
        self.id_to_index[message_id] = index
        self.names[index] = name
        self.contents[index] = content
        return index


class ContextBuilder:
    """Builds conversation context for a chat from the store.

    Holds no message or summary state between calls; every build re-reads
    the store.
    """

    def __init__(
        self,
        store: AgentStore,
        agent_name: str,
        is_direct: Callable[[str], bool] = is_direct_chat,
    ):
        self.store = store
        self.agent_name = agent_name
        self.is_direct = is_direct

    async def load_unsummarized(self, chat_id: str) -> tuple[Summary | None, list[ContextMessage]]:
        """Latest summary plus every message after it, with no token cap."""
        summary = await self.store.fetch_latest_summary(chat_id)
        after_id = summary.to_message_id if summary else None
        messages = await self.store.fetch_messages_after(chat_id, after_id)
        return summary, messages

    async def build_context(
        self,
        chat_id: str,
        max_tokens: int,
        own_id: str = "",
        current_message: InputMessage | None = None,
    ) -> ContextResult:
        """Build the indexed transcript for a chat.

        Raises StoreError when a store query fails.
        """
        summary, candidates = await self.load_unsummarized(chat_id)

        result = ContextResult()
        summary_tokens = 0
        if summary is not None:
            summary_tokens = summary.token_count
            result.messages.append(LLMMessage(
                role="system",
                content=f"{SUMMARY_HEADER}\n{summary.summary_text}",
            ))
        result.token_count = summary_tokens

        messages = self._take_within_budget(candidates, max_tokens - summary_tokens)
        if len(messages) < len(candidates):
            logger.debug(
                "Context budget reached, dropping newest messages",
                chat_id=chat_id,
                kept=len(messages),
                dropped=len(candidates) - len(messages),
            )

        state = _BuildState(is_dm=self.is_direct(chat_id))

        for msg in messages:
            own = self._is_own(msg, own_id)
            name = self._resolve_sender_name(msg, own, state)
            content = msg.content

            if own:
                for tool_msg in await self._tool_messages(msg.id):
                    result.messages.append(tool_msg)
                    result.token_count += estimate_message_tokens(tool_msg.content or _calls_text(tool_msg))

            line = self._format_entry(
                state.next_index,
                name,
                content,
                msg.quoted_message_id,
                msg.quoted_sender_id,
                msg.quoted_content,
                own_id,
                state,
            )
            state.claim(msg.id, name, content)
            result.messages.append(LLMMessage(role="assistant" if own else "user", content=line))
            result.token_count += estimate_message_tokens(content)

        if current_message is not None and current_message.id not in state.id_to_index:
            current = ContextMessage(
                id=current_message.id,
                chat_id=chat_id,
                sender_id=current_message.sender_id,
                from_me=False,
                text=current_message.text,
                push_name=current_message.push_name,
                quoted_message_id=current_message.quoted_message_id,
                quoted_sender_id=current_message.quoted_sender_id,
                quoted_content=current_message.quoted_content,
            )
            name = self._resolve_sender_name(current, False, state)
            line = self._format_entry(
                state.next_index,
                name,
                current.text,
                current.quoted_message_id,
                current.quoted_sender_id,
                current.quoted_content,
                own_id,
                state,
            )
            state.claim(current.id, name, current.text)
            result.messages.append(LLMMessage(role="user", content=line))
            result.token_count += estimate_message_tokens(current.text)

        result.index_map = state.index_map
        result.next_index = state.next_index
        return result

    def _take_within_budget(self, messages: list[ContextMessage], budget: int) -> list[ContextMessage]:
        """Oldest-first scan that stops before the first message over budget.

        Once the budget is hit the newest messages are the ones left out.
        """
        kept = []
        total = 0
        for msg in messages:
            tokens = estimate_message_tokens(msg.content)
            if total + tokens > budget:
                break
            kept.append(msg)
            total += tokens
        return kept

    def _is_own(self, msg: ContextMessage, own_id: str) -> bool:
        return msg.from_me or bool(own_id and msg.sender_id == own_id)

    def _resolve_sender_name(self, msg: ContextMessage, own: bool, state: _BuildState) -> str:
        """Pick the display name for a sender.

        Order: agent name for own messages, then full name > first name >
        push name > business name, then "User" in direct chats or a
        per-build "User{N}" elsewhere.
        """
        if own:
            return self.agent_name

        candidates = msg.display_candidates
        if candidates:
            name = candidates[0]
        elif state.is_dm:
            name = "User"
        elif not msg.sender_id:
            return "Unknown"
        else:
            name = f"User{state.user_number(msg.sender_id)}"

        if msg.sender_id:
            state.sender_names.setdefault(msg.sender_id, name)
        return name

    def _format_entry(
        self,
        index: int,
        name: str,
        content: str,
        quoted_message_id: str,
        quoted_sender_id: str,
        quoted_content: str,
        own_id: str,
        state: _BuildState,
    ) -> str:
        main_line = f"{index}|{name}|{content}"
        if not quoted_message_id:
            return main_line

        quoted_index = state.id_to_index.get(quoted_message_id)
        preview = quoted_content
        if not preview and quoted_index is not None:
            preview = state.contents[quoted_index]
        preview = truncate_preview(preview)

        if quoted_index is not None:
            quoted_name = state.names[quoted_index]
        elif own_id and quoted_sender_id == own_id:
            quoted_name = self.agent_name
        else:
            quoted_name = state.sender_names.get(quoted_sender_id, "User")

        if quoted_index is not None:
            return f"> {quoted_index}|{quoted_name}|{preview}\n{main_line}"
        if preview:
            return f"> ?|{quoted_name}|{preview}\n{main_line}"
        return main_line

    async def _tool_messages(self, message_id: str) -> list[LLMMessage]:
        """Stored tool calls and results behind one of our own messages.

        Returned as an assistant tool-call message followed by the matching
        tool results, ready to go right before the assistant's reply.
        """
        record = await self.store.fetch_tool_record(message_id)
        if record is None:
            return []

        try:
            calls, results = decode_tool_record(record)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Skipping undecodable tool record", message_id=message_id, error=str(e))
            return []

        answered = {r.tool_call_id for r in results}
        calls = [c for c in calls if c.id in answered]
        call_ids = {c.id for c in calls}
        results = [r for r in results if r.tool_call_id in call_ids]
        if not calls:
            return []

        return [LLMMessage(role="assistant", content="", tool_calls=calls), *results]


def _calls_text(msg: LLMMessage) -> str:
    return json.dumps([c.to_dict() for c in msg.tool_calls or []])


def encode_tool_record(calls: list[ToolCall], results: list[LLMMessage]) -> tuple[str, str]:
    """Serialize a run's tool calls and tool-role results for the audit table."""
    calls_json = json.dumps([c.to_dict() for c in calls], ensure_ascii=False)
    results_json = json.dumps(
        [
            {"tool_call_id": r.tool_call_id, "name": r.name, "content": r.content}
            for r in results
        ],
        ensure_ascii=False,
    )
    return calls_json, results_json


def decode_tool_record(record: ToolRecord) -> tuple[list[ToolCall], list[LLMMessage]]:
    """Inverse of encode_tool_record."""
    calls = [ToolCall.from_dict(c) for c in json.loads(record.tool_calls or "[]")]
    results = [
        LLMMessage(
            role="tool",
            content=str(r["content"]),
            tool_call_id=str(r["tool_call_id"]),
            name=r.get("name"),
        )
        for r in json.loads(record.tool_results or "[]")
    ]
    return calls, results
