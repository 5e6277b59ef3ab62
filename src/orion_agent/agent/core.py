"""
Core agent implementation.

This is the brain of the system. For every message it is asked to answer it:
1. Builds an indexed transcript of the chat from the store
2. Summarizes aging history when the transcript gets too large
3. Runs the LLM with tool support in a bounded loop
4. Sends the final answer and records the tool calls behind it
"""

import re
from collections.abc import Sequence

import structlog

from ..channels.base import BaseChannel
from ..config import Settings, get_settings
from ..errors import AgentError, IterationLimitError, ProviderError, StoreError
from ..llm import BaseLLM, LLMMessage, ToolCall, create_llm
from ..store import AgentStore
from ..tools import ExecutionContext, ToolRegistry, create_tool_registry
from .context import ContextBuilder, ContextResult, InputMessage, encode_tool_record
from .session import AgentSession
from .trigger import BasicTrigger, Trigger
from .window import ContextWindow

logger = structlog.get_logger()

FORMAT_PREFIX = re.compile(r"^\d+\|")


def build_system_prompt(base_prompt: str, agent_name: str, next_index: int) -> str:
    """Base prompt followed by the transcript format instructions."""
    return (
        f"{base_prompt}\n\n"
        f"IMPORTANT: Format your responses as: {{index}}|{agent_name}|{{your message}}\n"
        f"Example: {next_index}|{agent_name}|Hello! How can I help you?\n\n"
        "The conversation uses this format where each message has an index number.\n"
        "Your response should use the next available index."
    )


def ensure_format(response: str, next_index: int, agent_name: str) -> str:
    """Prefix the response with `{index}|{agent_name}|` if the model left it out."""
    if not response:
        return ""
    if FORMAT_PREFIX.match(response):
        return response
    return f"{next_index}|{agent_name}|{response}"


def extract_content(response: str) -> str:
    """Everything after the second `|` of a formatted response."""
    parts = response.split("|", 2)
    if len(parts) == 3:
        return parts[2]
    return response


class Agent:
    """Main agent class that processes messages and generates responses.

    Holds no per-chat state: every run rebuilds its context from the store,
    so concurrent runs for different (or the same) chats don't interfere.
    """

    def __init__(
        self,
        store: AgentStore,
        channel: BaseChannel,
        llm: BaseLLM | None = None,
        tool_registry: ToolRegistry | None = None,
        settings: Settings | None = None,
        session: AgentSession | None = None,
        trigger: Trigger | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.channel = channel
        self.llm = llm or create_llm(settings=self.settings)
        self.tool_registry = tool_registry or create_tool_registry(channel)
        self.session = session or AgentSession()
        self.trigger = trigger or BasicTrigger()

        self.agent_name = self.settings.agent_name
        self.system_prompt = self.settings.system_prompt
        self.max_tool_iterations = self.settings.max_tool_iterations

        self.context_builder = ContextBuilder(store, self.agent_name)
        self.context_window = ContextWindow(
            self.context_builder,
            store,
            self.llm,
            self.llm.max_context,
            summary_max_tokens=self.settings.summary_max_tokens,
            summary_temperature=self.settings.summary_temperature,
        )

    async def process_message(
        self,
        chat_id: str,
        sender_id: str,
        message_id: str,
        text: str,
        mentioned_ids: Sequence[str] = (),
        from_me: bool = False,
        push_name: str = "",
        quoted_message_id: str = "",
        quoted_sender_id: str = "",
        quoted_content: str = "",
    ) -> str | None:
        """Answer one inbound message.

        Returns the id of the message sent back, or None when nothing was
        sent. Raises StoreError when the context can't be read,
        ProviderError when the LLM call fails and IterationLimitError when
        the tool loop doesn't settle; nothing is sent in those cases.
        """
        session = self.session.snapshot()

        decision = self.trigger.should_respond(chat_id, sender_id, text, list(mentioned_ids), from_me)
        if not decision.should_respond:
            logger.debug("Skipping message", chat_id=chat_id, sender_id=sender_id, reason=decision.reason)
            return None

        logger.info("Processing message", chat_id=chat_id, sender_id=sender_id, reason=decision.reason)

        current = InputMessage(
            id=message_id,
            chat_id=chat_id,
            sender_id=sender_id,
            text=text,
            push_name=push_name,
            quoted_message_id=quoted_message_id,
            quoted_sender_id=quoted_sender_id,
            quoted_content=quoted_content,
        )

        await self._set_typing(chat_id, True)
        try:
            return await self._respond(current, session.own_id)
        finally:
            await self._set_typing(chat_id, False)

    async def _respond(self, current: InputMessage, own_id: str) -> str | None:
        chat_id = current.chat_id
        context = await self._build_context(current, own_id)

        exec_ctx = ExecutionContext(
            chat_id=chat_id,
            sender_id=current.sender_id,
            message_id=current.id,
            index_map=dict(context.index_map),
        )

        messages = [
            LLMMessage(
                role="system",
                content=build_system_prompt(self.system_prompt, self.agent_name, context.next_index),
            ),
            *context.messages,
        ]

        answer, calls, results = await self._run_tool_loop(messages, exec_ctx)

        reply = extract_content(ensure_format(answer, context.next_index, self.agent_name))
        if not reply:
            logger.info("Empty response, nothing sent", chat_id=chat_id)
            return None

        sent_id = await self.channel.send_text(chat_id, reply)
        logger.info("Response sent", chat_id=chat_id, message_id=sent_id, tool_calls=len(calls))

        if calls:
            tool_calls_json, tool_results_json = encode_tool_record(calls, results)
            try:
                await self.store.put_tool_record(sent_id, chat_id, tool_calls_json, tool_results_json)
            except StoreError as e:
                logger.warning("Failed to save tool calls", chat_id=chat_id, message_id=sent_id, error=str(e))

        return sent_id

    async def _build_context(self, current: InputMessage, own_id: str) -> ContextResult:
        """Build the transcript, summarizing and rebuilding once if it's too big."""
        max_tokens = self.llm.max_context
        context = await self.context_builder.build_context(current.chat_id, max_tokens, own_id, current)

        if not self.context_window.check_threshold(context.token_count):
            return context

        logger.info(
            "Context approaching limit, running summarization",
            chat_id=current.chat_id,
            token_count=context.token_count,
        )
        try:
            summary = await self.context_window.should_summarize(current.chat_id, context.token_count, own_id)
        except AgentError as e:
            logger.warning("Summarization failed", chat_id=current.chat_id, error=str(e))
            return context

        if summary is None:
            return context
        return await self.context_builder.build_context(current.chat_id, max_tokens, own_id, current)

    async def _run_tool_loop(
        self,
        messages: list[LLMMessage],
        exec_ctx: ExecutionContext,
    ) -> tuple[str, list[ToolCall], list[LLMMessage]]:
        """Call the LLM until it answers without tool calls.

        Returns the answer plus every tool call and tool result of the run.
        """
        tools = self.tool_registry.get_definitions()
        all_calls: list[ToolCall] = []
        all_results: list[LLMMessage] = []

        for iteration in range(self.max_tool_iterations):
            try:
                response = await self.llm.complete(messages, tools=tools or None)
            except ProviderError as e:
                logger.error("LLM request failed", chat_id=exec_ctx.chat_id, iteration=iteration + 1, error=str(e))
                raise

            if not response.tool_calls:
                return response.content, all_calls, all_results

            logger.info(
                "Executing tool calls",
                chat_id=exec_ctx.chat_id,
                iteration=iteration + 1,
                tools=[call.name for call in response.tool_calls],
            )
            messages.append(LLMMessage(
                role="assistant",
                content=response.content,
                tool_calls=response.tool_calls,
            ))
            results = await self.tool_registry.execute_tool_calls(response.tool_calls, exec_ctx)
            messages.extend(results)

            all_calls.extend(response.tool_calls)
            all_results.extend(results)

        logger.error(
            "Max tool iterations reached",
            chat_id=exec_ctx.chat_id,
            iterations=self.max_tool_iterations,
        )
        raise IterationLimitError(self.max_tool_iterations)

    async def _set_typing(self, chat_id: str, typing: bool) -> None:
        """Toggle the typing indicator. Failures are logged, not raised."""
        try:
            if typing:
                await self.channel.start_typing(chat_id)
            else:
                await self.channel.stop_typing(chat_id)
        except Exception as e:
            logger.warning("Typing indicator failed", chat_id=chat_id, typing=typing, error=str(e))
