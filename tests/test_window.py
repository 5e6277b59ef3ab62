"""
Tests for the context window manager (rolling summarization).
"""

import asyncio
from datetime import datetime

import pytest

from orion_agent.agent.context import ContextBuilder
from orion_agent.agent.window import ContextWindow, find_split_index, format_summary_prompt
from orion_agent.errors import ProviderError, SummarizationError
from orion_agent.llm.base import LLMResponse
from orion_agent.store import ContextMessage

from conftest import DM_CHAT, ScriptedLLM


def make_messages(*texts, from_me=False):
    return [
        ContextMessage(
            id=f"m{i}",
            chat_id=DM_CHAT,
            sender_id="u1",
            from_me=from_me,
            timestamp=datetime(2024, 1, 1),
            text=text,
        )
        for i, text in enumerate(texts, start=1)
    ]


def make_window(store, llm, max_context=40):
    builder = ContextBuilder(store, "Orion")
    return ContextWindow(builder, store, llm, max_context)


def test_check_threshold_boundary():
    """Test the threshold is strictly more than half the context."""
    window = make_window(None, ScriptedLLM("unused"), max_context=1000)

    assert window.check_threshold(500) is False
    assert window.check_threshold(501) is True


def test_find_split_index():
    """Test the split lands on the first prefix reaching two thirds of the mass."""
    # six messages of 4 tokens: T=24, target 16, reached at the fourth
    assert find_split_index(make_messages("a", "b", "c", "d", "e", "f")) == 3
    # 14 + 4 + 4: T=22, target 14, reached by the first message alone
    assert find_split_index(make_messages("x" * 40, "b", "c")) == 0
    assert find_split_index([]) is None


def test_summary_prompt_lines():
    """Test the summary prompt labels speakers and carries the old summary."""
    messages = make_messages("hello", "bye")
    messages[0].push_name = "Ann"
    messages[1].from_me = True

    prompt = format_summary_prompt("Earlier stuff.", messages)

    assert prompt.startswith("Summarize the following conversation concisely")
    assert "Previous summary:\nEarlier stuff.\n\nNew messages:\n" in prompt
    assert "User (Ann): hello\n" in prompt
    assert "Assistant: bye\n" in prompt


def test_summary_prompt_without_names():
    """Test a sender without any known name is just 'User'."""
    prompt = format_summary_prompt(None, make_messages("hello"))

    assert "Previous summary" not in prompt
    assert prompt.endswith("User: hello\n")


@pytest.mark.asyncio
async def test_below_threshold_does_nothing(store):
    """Test no summarization happens under the threshold."""
    llm = ScriptedLLM("summary")
    window = make_window(store, llm, max_context=1000)

    assert await window.should_summarize(DM_CHAT, 500) is None
    assert llm.calls == []


@pytest.mark.asyncio
async def test_too_few_messages(store, add_message):
    """Test fewer than three messages are never summarized."""
    await add_message("m1", "hello there")
    await add_message("m2", "hello there")
    llm = ScriptedLLM("summary")

    assert await make_window(store, llm).should_summarize(DM_CHAT, 100) is None
    assert llm.calls == []


@pytest.mark.asyncio
async def test_single_message_prefix_is_skipped(store, add_message):
    """Test a split at the first message does not produce a summary."""
    await add_message("m1", "x" * 40)
    await add_message("m2", "b")
    await add_message("m3", "c")
    llm = ScriptedLLM("summary")

    assert await make_window(store, llm).should_summarize(DM_CHAT, 100) is None
    assert llm.calls == []


@pytest.mark.asyncio
async def test_summarizes_oldest_two_thirds(store, add_message):
    """Test the oldest two thirds are summarized and persisted."""
    for i in range(1, 7):
        await add_message(f"m{i}", "hello there")  # 6 tokens each
    llm = ScriptedLLM("They greeted each other.")

    summary = await make_window(store, llm).should_summarize(DM_CHAT, 36)

    assert summary is not None
    assert summary.from_message_id == "m1"
    assert summary.to_message_id == "m4"
    assert summary.summary_text == "They greeted each other."
    assert summary.token_count == len("They greeted each other.") // 4

    stored = await store.fetch_latest_summary(DM_CHAT)
    assert stored.id == summary.id

    call = llm.calls[0]
    assert call["max_tokens"] == 1000
    assert call["temperature"] == 0.3
    assert call["messages"][0].role == "system"
    assert call["messages"][1].content.count("User: hello there\n") == 4


@pytest.mark.asyncio
async def test_summaries_only_move_forward(store, add_message):
    """Test a second summary starts after the first one and includes it."""
    for i in range(1, 7):
        await add_message(f"m{i}", "hello there")
    llm = ScriptedLLM("first summary", "second summary")
    window = make_window(store, llm)

    first = await window.should_summarize(DM_CHAT, 36)
    for i in range(7, 9):
        await add_message(f"m{i}", "hello there")
    second = await window.should_summarize(DM_CHAT, 36)

    assert first.to_message_id == "m4"
    assert second.from_message_id == "m5"
    assert second.to_message_id == "m7"
    prompt = llm.calls[1]["messages"][1].content
    assert "Previous summary:\nfirst summary" in prompt
    assert prompt.count("User: hello there\n") == 3

    _, remaining = await window.builder.load_unsummarized(DM_CHAT)
    assert [m.id for m in remaining] == ["m8"]


@pytest.mark.asyncio
async def test_summarize_empty_segment(store):
    """Test summarizing nothing is an error."""
    with pytest.raises(SummarizationError, match="no messages to summarize"):
        await make_window(store, ScriptedLLM("x")).summarize(DM_CHAT, None, [])


@pytest.mark.asyncio
async def test_summarize_empty_completion(store):
    """Test an empty completion stores nothing."""
    window = make_window(store, ScriptedLLM(LLMResponse(content="  ")))

    with pytest.raises(SummarizationError):
        await window.summarize(DM_CHAT, None, make_messages("a", "b"))

    assert await store.fetch_latest_summary(DM_CHAT) is None


@pytest.mark.asyncio
async def test_summarize_provider_error(store):
    """Test provider failures propagate unchanged."""
    window = make_window(store, ScriptedLLM(ProviderError("boom")))

    with pytest.raises(ProviderError):
        await window.summarize(DM_CHAT, None, make_messages("a", "b"))


class BlockingLLM(ScriptedLLM):
    """Waits for a release signal before answering."""

    def __init__(self, *responses):
        super().__init__(*responses)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def complete(self, messages, tools=None, max_tokens=None, temperature=None):
        self.started.set()
        await self.release.wait()
        return await super().complete(messages, tools, max_tokens, temperature)


@pytest.mark.asyncio
async def test_single_flight_per_chat(store, add_message):
    """Test an overlapping summarization for the same chat is skipped."""
    for i in range(1, 7):
        await add_message(f"m{i}", "hello there")
    llm = BlockingLLM("summary")
    window = make_window(store, llm)

    first = asyncio.create_task(window.should_summarize(DM_CHAT, 36))
    await llm.started.wait()

    assert await window.should_summarize(DM_CHAT, 36) is None

    llm.release.set()
    summary = await first
    assert summary is not None
    assert len(llm.calls) == 1
