"""
Context window management - rolling summarization of aging history.

When a built context grows past half of the model's context size, the
oldest two thirds (by token mass) of the unsummarized messages are folded,
together with the previous summary, into a new summary. Later builds start
right after the new summary's last message, so coverage only ever moves
forward.
"""

import structlog

from ..errors import SummarizationError
from ..llm.base import BaseLLM, LLMMessage
from ..llm.tokens import estimate_message_tokens, estimate_tokens
from ..models import Summary
from ..store import AgentStore, ContextMessage
from .context import ContextBuilder

logger = structlog.get_logger()

MIN_MESSAGES_TO_SUMMARIZE = 3

SUMMARY_SYSTEM_PROMPT = (
    "You are a summarization assistant. "
    "Create concise summaries that preserve important context."
)

SUMMARY_INSTRUCTIONS = (
    "Summarize the following conversation concisely, "
    "preserving key information, decisions, and context:\n\n"
)


def find_split_index(messages: list[ContextMessage]) -> int | None:
    """Index of the last message in the oldest two thirds of the token mass.

    That is the first prefix whose cumulative token sum reaches
    floor(2T/3), T being the total. None for an empty list.
    """
    if not messages:
        return None

    costs = [estimate_message_tokens(msg.content) for msg in messages]
    target = (sum(costs) * 2) // 3

    running = 0
    for i, cost in enumerate(costs):
        running += cost
        if running >= target:
            return i
    return len(messages) - 1


def format_summary_prompt(
    old_summary_text: str | None,
    messages: list[ContextMessage],
    own_id: str = "",
) -> str:
    """Render the previous summary and a message segment as plain lines."""
    lines = [SUMMARY_INSTRUCTIONS]
    if old_summary_text:
        lines.append(f"Previous summary:\n{old_summary_text}\n\nNew messages:\n")

    for msg in messages:
        own = msg.from_me or bool(own_id and msg.sender_id == own_id)
        if own:
            lines.append(f"Assistant: {msg.content}\n")
            continue

        candidates = msg.display_candidates
        if candidates:
            lines.append(f"User ({candidates[0]}): {msg.content}\n")
        else:
            lines.append(f"User: {msg.content}\n")

    return "".join(lines)


class ContextWindow:
    """Decides when a chat needs summarizing and writes the summary.

    At most one summarization per chat runs at a time within a process;
    an overlapping request for the same chat is skipped, the next message
    will re-check the threshold anyway.
    """

    def __init__(
        self,
        builder: ContextBuilder,
        store: AgentStore,
        llm: BaseLLM,
        max_context: int,
        summary_max_tokens: int = 1000,
        summary_temperature: float = 0.3,
    ):
        self.builder = builder
        self.store = store
        self.llm = llm
        self.max_context = max_context
        self.summary_max_tokens = summary_max_tokens
        self.summary_temperature = summary_temperature
        self._in_progress: set[str] = set()

    def check_threshold(self, token_count: int) -> bool:
        """True once the context holds more than half the model's window."""
        return token_count > self.max_context // 2

    async def should_summarize(
        self,
        chat_id: str,
        token_count: int,
        own_id: str = "",
    ) -> Summary | None:
        """Summarize the oldest part of the chat if the context is too big.

        Returns the stored summary, or None when nothing was done.
        """
        if not self.check_threshold(token_count):
            return None

        if chat_id in self._in_progress:
            logger.debug("Summarization already running, skipping", chat_id=chat_id)
            return None

        self._in_progress.add(chat_id)
        try:
            previous, messages = await self.builder.load_unsummarized(chat_id)
            if len(messages) < MIN_MESSAGES_TO_SUMMARIZE:
                logger.debug("Not enough messages to summarize", chat_id=chat_id, count=len(messages))
                return None

            split = find_split_index(messages)
            if not split:
                return None

            logger.info(
                "Summarizing conversation",
                chat_id=chat_id,
                token_count=token_count,
                threshold=self.max_context // 2,
                messages=split + 1,
            )
            old_text = previous.summary_text if previous else None
            return await self.summarize(chat_id, old_text, messages[:split + 1], own_id)
        finally:
            self._in_progress.discard(chat_id)

    async def summarize(
        self,
        chat_id: str,
        old_summary_text: str | None,
        messages: list[ContextMessage],
        own_id: str = "",
    ) -> Summary:
        """Fold a message segment into a new persisted summary.

        Raises SummarizationError for an empty segment or an empty
        completion, ProviderError when the completion call fails and
        StoreError when the summary can't be saved.
        """
        if not messages:
            raise SummarizationError("no messages to summarize")

        prompt = format_summary_prompt(old_summary_text, messages, own_id)
        response = await self.llm.complete(
            [
                LLMMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
                LLMMessage(role="user", content=prompt),
            ],
            max_tokens=self.summary_max_tokens,
            temperature=self.summary_temperature,
        )

        text = response.content.strip()
        if not text:
            raise SummarizationError("no summary generated")

        summary = Summary(
            chat_id=chat_id,
            summary_text=text,
            token_count=estimate_tokens(text),
            from_message_id=messages[0].id,
            to_message_id=messages[-1].id,
        )
        return await self.store.put_summary(summary)
