"""
Database models for Orion Agent

Uses SQLAlchemy 2.0 async ORM for database operations.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, func
from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all models."""
    pass


class Contact(Base):
    """Known names for a sender, joined onto messages by sender id."""

    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    business_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())


class Message(Base):
    """A chat message as persisted by the transport layer."""

    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    chat_id: Mapped[str] = mapped_column(String(128), index=True)
    sender_id: Mapped[str] = mapped_column(String(128), default="")
    from_me: Mapped[bool] = mapped_column(Boolean, default=False)
    push_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Message content
    message_type: Mapped[str] = mapped_column(String(32), default="text")
    text_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    caption: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Quote/Reply context
    quoted_message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    quoted_sender_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    quoted_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_revoked: Mapped[bool] = mapped_column(Boolean, default=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime, index=True)


class Summary(Base):
    """Rolling summary of a chat prefix ending at to_message_id."""

    __tablename__ = "summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_id: Mapped[str] = mapped_column(String(128), index=True)
    summary_text: Mapped[str] = mapped_column(Text)
    token_count: Mapped[int] = mapped_column(Integer, default=0)
    from_message_id: Mapped[str] = mapped_column(String(128))
    to_message_id: Mapped[str] = mapped_column(String(128))

    created_at: Mapped[datetime] = mapped_column(DateTime, index=True)


class ToolRecord(Base):
    """Tool calls and results behind one outbound assistant message."""

    __tablename__ = "tool_records"

    message_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    chat_id: Mapped[str] = mapped_column(String(128), index=True)
    tool_calls: Mapped[str] = mapped_column(Text, default="")
    tool_results: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


def create_engine(database_url: str) -> AsyncEngine:
    """Create the async engine for a database URL."""
    return create_async_engine(database_url, echo=False)


async def init_database(engine: AsyncEngine) -> async_sessionmaker:
    """Create all tables on an engine and return a session maker for it."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False)
