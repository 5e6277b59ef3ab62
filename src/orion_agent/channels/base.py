"""
Outbound channel abstraction.

The transport (connection, pairing, reconnection, wire encoding) lives
outside the agent core. The agent and its tools only talk to a channel
through this interface.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class OutgoingMessage:
    """Message being sent to a chat."""

    text: str
    chat_id: str
    reply_to_message_id: str = ""
    reply_to_sender_id: str = ""

    # Metadata
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseChannel(ABC):
    """Abstract base class for messaging channels.

    Every method is a network call on a real transport; implementations
    raise on failure and the caller decides whether that is fatal.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable channel name."""
        ...

    @abstractmethod
    async def send_message(self, message: OutgoingMessage) -> str:
        """Send a message. Returns the platform message ID."""
        ...

    @abstractmethod
    async def edit_message(self, chat_id: str, message_id: str, text: str) -> str:
        """Edit one of our own messages. Returns the edit's message ID."""
        ...

    @abstractmethod
    async def revoke_message(self, chat_id: str, message_id: str) -> None:
        """Delete one of our own messages for everyone."""
        ...

    @abstractmethod
    async def react(self, chat_id: str, message_id: str, sender_id: str, emoji: str) -> None:
        """React to a message. An empty emoji removes the reaction."""
        ...

    @abstractmethod
    async def mark_read(self, chat_id: str, sender_id: str, message_id: str) -> None:
        """Mark a message as read."""
        ...

    @abstractmethod
    async def pin_message(self, chat_id: str, message_id: str, sender_id: str, unpin: bool = False) -> None:
        """Pin or unpin a message."""
        ...

    @abstractmethod
    async def start_typing(self, chat_id: str) -> None:
        """Show the typing indicator."""
        ...

    @abstractmethod
    async def stop_typing(self, chat_id: str) -> None:
        """Hide the typing indicator."""
        ...

    async def send_text(self, chat_id: str, text: str) -> str:
        """Send a plain text message."""
        return await self.send_message(OutgoingMessage(text=text, chat_id=chat_id))

    async def reply(self, chat_id: str, message_id: str, sender_id: str, text: str) -> str:
        """Send a text message quoting another message."""
        return await self.send_message(OutgoingMessage(
            text=text,
            chat_id=chat_id,
            reply_to_message_id=message_id,
            reply_to_sender_id=sender_id,
        ))

    async def remove_reaction(self, chat_id: str, message_id: str, sender_id: str) -> None:
        """Remove our reaction from a message."""
        await self.react(chat_id, message_id, sender_id, "")

    async def unpin_message(self, chat_id: str, message_id: str, sender_id: str) -> None:
        """Unpin a message."""
        await self.pin_message(chat_id, message_id, sender_id, unpin=True)
