"""
Message, summary and tool-record persistence.

The agent core only reads messages; the transport layer writes them
(save_message/save_contact exist for ingestion and tests).
"""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from .errors import StoreError
from .models import Contact, Message, Summary, ToolRecord

logger = structlog.get_logger()


@dataclass
class ContextMessage:
    """A stored message joined with what we know about its sender."""

    id: str
    chat_id: str
    sender_id: str
    from_me: bool
    timestamp: datetime | None = None
    message_type: str = "text"
    text: str = ""
    caption: str = ""
    push_name: str = ""

    # Quote/Reply context
    quoted_message_id: str = ""
    quoted_sender_id: str = ""
    quoted_content: str = ""

    # Contact info
    full_name: str = ""
    first_name: str = ""
    business_name: str = ""

    @property
    def content(self) -> str:
        """Text, else caption, else a type placeholder."""
        return self.text or self.caption or f"[{self.message_type}]"

    @property
    def display_candidates(self) -> list[str]:
        """Sender names in priority order, empty ones dropped."""
        names = [self.full_name, self.first_name, self.push_name, self.business_name]
        return [n for n in names if n]

    @classmethod
    def from_row(cls, message: Message, contact: Contact | None) -> "ContextMessage":
        if not message.id or message.timestamp is None:
            raise ValueError(f"incomplete message row: {message.id!r}")
        return cls(
            id=message.id,
            chat_id=message.chat_id,
            sender_id=message.sender_id or "",
            from_me=bool(message.from_me),
            timestamp=message.timestamp,
            message_type=message.message_type or "text",
            text=message.text_content or "",
            caption=message.caption or "",
            push_name=message.push_name or "",
            quoted_message_id=message.quoted_message_id or "",
            quoted_sender_id=message.quoted_sender_id or "",
            quoted_content=message.quoted_content or "",
            full_name=(contact.full_name or "") if contact else "",
            first_name=(contact.first_name or "") if contact else "",
            business_name=(contact.business_name or "") if contact else "",
        )


class AgentStore:
    """Async store over the agent tables."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def fetch_messages_after(
        self,
        chat_id: str,
        after_message_id: str | None = None,
    ) -> list[ContextMessage]:
        """Fetch non-revoked messages newer than after_message_id, oldest first.

        Rows that fail to decode are skipped. A query failure raises StoreError.
        """
        stmt = (
            select(Message, Contact)
            .outerjoin(Contact, Message.sender_id == Contact.id)
            .where(Message.chat_id == chat_id, Message.is_revoked.is_(False))
        )

        try:
            async with self.session_factory() as db:
                if after_message_id:
                    anchor = await db.scalar(
                        select(Message.timestamp).where(
                            Message.id == after_message_id,
                            Message.chat_id == chat_id,
                        )
                    )
                    if anchor is None:
                        logger.warning(
                            "Summary anchor message missing, reading full history",
                            chat_id=chat_id,
                            message_id=after_message_id,
                        )
                    else:
                        stmt = stmt.where(Message.timestamp > anchor)

                stmt = stmt.order_by(Message.timestamp.asc(), Message.id.asc())
                result = await db.execute(stmt)
                rows = result.all()
        except SQLAlchemyError as e:
            raise StoreError(f"fetch messages for {chat_id}: {e}") from e

        messages = []
        for message, contact in rows:
            try:
                messages.append(ContextMessage.from_row(message, contact))
            except (TypeError, ValueError) as e:
                logger.warning("Skipping undecodable message row", chat_id=chat_id, error=str(e))
        return messages

    async def fetch_latest_summary(self, chat_id: str) -> Summary | None:
        """Return the most recent summary for a chat, if any."""
        try:
            async with self.session_factory() as db:
                return await db.scalar(
                    select(Summary)
                    .where(Summary.chat_id == chat_id)
                    .order_by(Summary.created_at.desc(), Summary.id.desc())
                    .limit(1)
                )
        except SQLAlchemyError as e:
            raise StoreError(f"fetch latest summary for {chat_id}: {e}") from e

    async def put_summary(self, summary: Summary) -> Summary:
        """Persist a new summary. Summaries are never updated."""
        if summary.created_at is None:
            summary.created_at = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            async with self.session_factory() as db:
                db.add(summary)
                await db.commit()
                await db.refresh(summary)
        except SQLAlchemyError as e:
            raise StoreError(f"store summary for {summary.chat_id}: {e}") from e

        logger.info(
            "Summary stored",
            chat_id=summary.chat_id,
            from_message_id=summary.from_message_id,
            to_message_id=summary.to_message_id,
            token_count=summary.token_count,
        )
        return summary

    async def fetch_tool_record(self, message_id: str) -> ToolRecord | None:
        """Return the tool audit record behind an outbound message, if any."""
        try:
            async with self.session_factory() as db:
                return await db.get(ToolRecord, message_id)
        except SQLAlchemyError as e:
            raise StoreError(f"fetch tool record {message_id}: {e}") from e

    async def put_tool_record(
        self,
        message_id: str,
        chat_id: str,
        tool_calls: str,
        tool_results: str,
    ) -> None:
        """Save tool calls and results for an outbound message. Records are written once."""
        try:
            async with self.session_factory() as db:
                db.add(ToolRecord(
                    message_id=message_id,
                    chat_id=chat_id,
                    tool_calls=tool_calls,
                    tool_results=tool_results,
                ))
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"store tool record {message_id}: {e}") from e

    async def save_message(self, message: Message) -> None:
        """Insert or replace a message row."""
        try:
            async with self.session_factory() as db:
                await db.merge(message)
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"store message {message.id}: {e}") from e

    async def save_contact(self, contact: Contact) -> None:
        """Insert or replace a contact row."""
        try:
            async with self.session_factory() as db:
                await db.merge(contact)
                await db.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"store contact {contact.id}: {e}") from e
