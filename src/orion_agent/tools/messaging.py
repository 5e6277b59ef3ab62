"""
Messaging tools - act on the current chat through the outbound channel.

Messages are addressed by the transcript indices the model sees
("message 3"), resolved through the execution context's index map.
"""

from typing import Any

from ..channels.base import BaseChannel
from ..errors import ToolExecutionError
from .base import ExecutionContext, Tool, ToolParameter, ToolResult


def _resolve_message(exec_ctx: ExecutionContext, message_index: Any, default_current: bool) -> str:
    """Turn a transcript index into a message id.

    A missing/zero index means the message being answered when
    default_current is set.
    """
    if message_index in (None, "", 0, "0"):
        if default_current:
            return exec_ctx.message_id
        raise ToolExecutionError("message_index is required")

    try:
        index = int(message_index)
    except (TypeError, ValueError):
        raise ToolExecutionError(f"invalid message index: {message_index!r}") from None

    message_id = exec_ctx.resolve_index(index)
    if message_id is None:
        raise ToolExecutionError(f"message index {index} not found")
    return message_id


def _index_param(description: str, required: bool) -> ToolParameter:
    return ToolParameter(
        name="message_index",
        param_type="integer",
        description=description,
        required=required,
    )


def create_messaging_tools(channel: BaseChannel) -> list[Tool]:
    """Create the built-in chat tools bound to a channel."""

    async def send_text_handler(exec_ctx: ExecutionContext, text: str) -> ToolResult:
        message_id = await channel.send_text(exec_ctx.chat_id, text)
        return ToolResult.ok({"message_id": message_id})

    async def send_reply_handler(
        exec_ctx: ExecutionContext,
        text: str,
        message_index: int | None = None,
    ) -> ToolResult:
        reply_to = _resolve_message(exec_ctx, message_index, default_current=True)
        message_id = await channel.reply(exec_ctx.chat_id, reply_to, exec_ctx.sender_id, text)
        return ToolResult.ok({"message_id": message_id})

    async def edit_message_handler(
        exec_ctx: ExecutionContext,
        message_index: int,
        new_text: str,
    ) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=False)
        message_id = await channel.edit_message(exec_ctx.chat_id, target, new_text)
        return ToolResult.ok({"message_id": message_id})

    async def revoke_message_handler(exec_ctx: ExecutionContext, message_index: int) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=False)
        await channel.revoke_message(exec_ctx.chat_id, target)
        return ToolResult.ok({"status": "revoked"})

    async def react_handler(
        exec_ctx: ExecutionContext,
        emoji: str,
        message_index: int | None = None,
    ) -> ToolResult:
        if not emoji:
            raise ToolExecutionError("emoji is required")
        target = _resolve_message(exec_ctx, message_index, default_current=True)
        await channel.react(exec_ctx.chat_id, target, exec_ctx.sender_id, emoji)
        return ToolResult.ok({"status": "reacted"})

    async def remove_reaction_handler(
        exec_ctx: ExecutionContext,
        message_index: int | None = None,
    ) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=True)
        await channel.remove_reaction(exec_ctx.chat_id, target, exec_ctx.sender_id)
        return ToolResult.ok({"status": "removed"})

    async def mark_read_handler(
        exec_ctx: ExecutionContext,
        message_index: int | None = None,
    ) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=True)
        await channel.mark_read(exec_ctx.chat_id, exec_ctx.sender_id, target)
        return ToolResult.ok({"status": "read"})

    async def set_typing_handler(exec_ctx: ExecutionContext, typing: bool) -> ToolResult:
        if typing:
            await channel.start_typing(exec_ctx.chat_id)
        else:
            await channel.stop_typing(exec_ctx.chat_id)
        return ToolResult.ok({"typing": bool(typing)})

    async def pin_message_handler(exec_ctx: ExecutionContext, message_index: int) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=False)
        await channel.pin_message(exec_ctx.chat_id, target, exec_ctx.sender_id)
        return ToolResult.ok({"status": "pinned"})

    async def unpin_message_handler(exec_ctx: ExecutionContext, message_index: int) -> ToolResult:
        target = _resolve_message(exec_ctx, message_index, default_current=False)
        await channel.unpin_message(exec_ctx.chat_id, target, exec_ctx.sender_id)
        return ToolResult.ok({"status": "unpinned"})

    text_param = ToolParameter(
        name="text",
        param_type="string",
        description="The text message to send",
        required=True,
    )

    return [
        Tool(
            name="send_text",
            description="Send a text message to the current chat",
            parameters=[text_param],
            handler=send_text_handler,
        ),
        Tool(
            name="send_reply",
            description="Send a reply to a specific message by index",
            parameters=[
                ToolParameter(
                    name="text",
                    param_type="string",
                    description="The reply text",
                    required=True,
                ),
                _index_param(
                    "Index of the message to reply to (optional, defaults to current message)",
                    required=False,
                ),
            ],
            handler=send_reply_handler,
        ),
        Tool(
            name="edit_message",
            description="Edit a previously sent message by index (only your own messages)",
            parameters=[
                _index_param("Index of the message to edit", required=True),
                ToolParameter(
                    name="new_text",
                    param_type="string",
                    description="The new text content",
                    required=True,
                ),
            ],
            handler=edit_message_handler,
        ),
        Tool(
            name="revoke_message",
            description="Delete a message for everyone by index (revoke)",
            parameters=[_index_param("Index of the message to revoke", required=True)],
            handler=revoke_message_handler,
        ),
        Tool(
            name="react",
            description="Add a reaction emoji to a message",
            parameters=[
                ToolParameter(
                    name="emoji",
                    param_type="string",
                    description="Reaction emoji (e.g., 👍, ❤️, 😂)",
                    required=True,
                ),
                _index_param(
                    "Index of the message to react to (optional, defaults to current message)",
                    required=False,
                ),
            ],
            handler=react_handler,
        ),
        Tool(
            name="remove_reaction",
            description="Remove your reaction from a message",
            parameters=[
                _index_param(
                    "Index of the message to remove the reaction from (optional, defaults to current message)",
                    required=False,
                ),
            ],
            handler=remove_reaction_handler,
        ),
        Tool(
            name="mark_read",
            description="Mark a message as read",
            parameters=[
                _index_param(
                    "Index of message to mark as read (optional, defaults to current)",
                    required=False,
                ),
            ],
            handler=mark_read_handler,
        ),
        Tool(
            name="set_typing",
            description="Show or hide typing indicator in the chat",
            parameters=[
                ToolParameter(
                    name="typing",
                    param_type="boolean",
                    description="true to show typing, false to stop",
                    required=True,
                ),
            ],
            handler=set_typing_handler,
        ),
        Tool(
            name="pin_message",
            description="Pin a message by index",
            parameters=[_index_param("Index of message to pin", required=True)],
            handler=pin_message_handler,
        ),
        Tool(
            name="unpin_message",
            description="Unpin a message by index",
            parameters=[_index_param("Index of message to unpin", required=True)],
            handler=unpin_message_handler,
        ),
    ]
