"""
Tests for the SQL store.
"""

from datetime import datetime

import pytest

from orion_agent.errors import StoreError
from orion_agent.models import Base, Message, Summary

from conftest import DM_CHAT, GROUP_CHAT


@pytest.mark.asyncio
async def test_messages_in_time_order(store, add_message):
    """Test messages come back oldest first and per chat."""
    await add_message("m1", "one")
    await add_message("g1", "group", chat_id=GROUP_CHAT)
    await add_message("m2", "two")

    messages = await store.fetch_messages_after(DM_CHAT)

    assert [m.id for m in messages] == ["m1", "m2"]
    assert messages[0].text == "one"


@pytest.mark.asyncio
async def test_revoked_messages_are_hidden(store, add_message):
    """Test revoked messages are never returned."""
    await add_message("m1", "one")
    await add_message("m2", "oops", is_revoked=True)

    assert [m.id for m in await store.fetch_messages_after(DM_CHAT)] == ["m1"]


@pytest.mark.asyncio
async def test_messages_after_anchor(store, add_message):
    """Test only messages newer than the anchor are returned."""
    for i in range(1, 5):
        await add_message(f"m{i}", f"message {i}")

    messages = await store.fetch_messages_after(DM_CHAT, "m2")

    assert [m.id for m in messages] == ["m3", "m4"]


@pytest.mark.asyncio
async def test_missing_anchor_reads_everything(store, add_message):
    """Test an anchor that no longer exists means no anchor."""
    await add_message("m1", "one")
    await add_message("m2", "two")

    messages = await store.fetch_messages_after(DM_CHAT, "deleted")

    assert [m.id for m in messages] == ["m1", "m2"]


@pytest.mark.asyncio
async def test_contact_names_are_joined(store, add_message, add_contact):
    """Test sender names from contacts come along with messages."""
    await add_contact("15550001111@s.whatsapp.net", full_name="Ann Lee", business_name="Ann's")
    await add_message("m1", "hi", push_name="annie")

    message = (await store.fetch_messages_after(DM_CHAT))[0]

    assert message.display_candidates == ["Ann Lee", "annie", "Ann's"]


@pytest.mark.asyncio
async def test_latest_summary(store):
    """Test the most recent summary wins."""
    assert await store.fetch_latest_summary(DM_CHAT) is None

    await store.put_summary(Summary(
        chat_id=DM_CHAT,
        summary_text="old",
        token_count=1,
        from_message_id="m1",
        to_message_id="m2",
        created_at=datetime(2024, 1, 1),
    ))
    await store.put_summary(Summary(
        chat_id=DM_CHAT,
        summary_text="new",
        token_count=1,
        from_message_id="m3",
        to_message_id="m4",
        created_at=datetime(2024, 1, 2),
    ))

    latest = await store.fetch_latest_summary(DM_CHAT)
    assert latest.summary_text == "new"
    assert await store.fetch_latest_summary(GROUP_CHAT) is None


@pytest.mark.asyncio
async def test_tool_record_is_written_once(store):
    """Test tool records are keyed by the outbound message id and never overwritten."""
    assert await store.fetch_tool_record("out-1") is None

    await store.put_tool_record("out-1", DM_CHAT, "[1]", "[2]")
    with pytest.raises(StoreError):
        await store.put_tool_record("out-1", DM_CHAT, "[3]", "[4]")

    record = await store.fetch_tool_record("out-1")
    assert record.tool_calls == "[1]"
    assert record.tool_results == "[2]"


@pytest.mark.asyncio
async def test_query_failure_raises_store_error(engine, store):
    """Test database failures surface as StoreError."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    with pytest.raises(StoreError):
        await store.fetch_messages_after(DM_CHAT)
    with pytest.raises(StoreError):
        await store.fetch_latest_summary(DM_CHAT)
    with pytest.raises(StoreError):
        await store.save_message(Message(id="m1", chat_id=DM_CHAT, timestamp=datetime(2024, 1, 1)))
