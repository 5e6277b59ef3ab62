"""
Shared fixtures: an in-memory store, a recording channel and a scripted LLM.
"""

import itertools
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from orion_agent.channels.base import BaseChannel, OutgoingMessage
from orion_agent.config import Settings
from orion_agent.llm.base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolDefinition
from orion_agent.models import Contact, Message, init_database
from orion_agent.store import AgentStore

DM_CHAT = "15550001111@s.whatsapp.net"
GROUP_CHAT = "120363000000000000@g.us"
BASE_TIME = datetime(2024, 1, 1, 12, 0, 0)


class FakeChannel(BaseChannel):
    """Records every call and hands out sequential message ids."""

    def __init__(self):
        self.sent: list[OutgoingMessage] = []
        self.calls: list[tuple] = []
        self.send_error: Exception | None = None
        self._ids = itertools.count(1)

    @property
    def name(self) -> str:
        return "fake"

    async def send_message(self, message: OutgoingMessage) -> str:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)
        return f"out-{next(self._ids)}"

    async def edit_message(self, chat_id: str, message_id: str, text: str) -> str:
        self.calls.append(("edit", chat_id, message_id, text))
        return f"edit-{next(self._ids)}"

    async def revoke_message(self, chat_id: str, message_id: str) -> None:
        self.calls.append(("revoke", chat_id, message_id))

    async def react(self, chat_id: str, message_id: str, sender_id: str, emoji: str) -> None:
        self.calls.append(("react", chat_id, message_id, sender_id, emoji))

    async def mark_read(self, chat_id: str, sender_id: str, message_id: str) -> None:
        self.calls.append(("mark_read", chat_id, sender_id, message_id))

    async def pin_message(self, chat_id: str, message_id: str, sender_id: str, unpin: bool = False) -> None:
        self.calls.append(("unpin" if unpin else "pin", chat_id, message_id, sender_id))

    async def start_typing(self, chat_id: str) -> None:
        self.calls.append(("start_typing", chat_id))

    async def stop_typing(self, chat_id: str) -> None:
        self.calls.append(("stop_typing", chat_id))


class ScriptedLLM(BaseLLM):
    """Returns queued responses in order; the last one repeats forever.

    A queued exception is raised instead of returned.
    """

    def __init__(self, *responses, max_context: int = 128_000):
        super().__init__(api_key="test", model="scripted", max_context=max_context)
        self.responses = list(responses)
        self.calls: list[dict] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    async def complete(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> LLMResponse:
        self.calls.append({
            "messages": list(messages),
            "tools": tools,
            "max_tokens": max_tokens,
            "temperature": temperature,
        })
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return LLMResponse(content=item)
        return item


def tool_response(name: str, arguments: str = "{}", call_id: str = "call_1") -> LLMResponse:
    """An LLM response that requests a single tool call."""
    return LLMResponse(content="", tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)])


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def store(engine):
    session_factory = await init_database(engine)
    return AgentStore(session_factory)


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def settings():
    return Settings(_env_file=None, agent_name="Orion", openai_api_key="test")


@pytest.fixture
def add_message(store):
    """Store a message; each call is one minute after the previous one."""
    clock = itertools.count(1)

    async def _add(
        message_id: str,
        text: str,
        chat_id: str = DM_CHAT,
        sender_id: str = "15550001111@s.whatsapp.net",
        from_me: bool = False,
        **fields,
    ) -> Message:
        message = Message(
            id=message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            from_me=from_me,
            text_content=text,
            timestamp=BASE_TIME + timedelta(minutes=next(clock)),
            **fields,
        )
        await store.save_message(message)
        return message

    return _add


@pytest.fixture
def add_contact(store):
    async def _add(contact_id: str, **names) -> Contact:
        contact = Contact(id=contact_id, **names)
        await store.save_contact(contact)
        return contact

    return _add
