"""
Response gating.

Real trigger policy (DM/group rules, allow and block lists, mention and
command detection) belongs to the embedding application. The agent only
needs something that answers "respond to this?".
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of a trigger check."""

    should_respond: bool
    reason: str


class Trigger(Protocol):
    def should_respond(
        self,
        chat_id: str,
        sender_id: str,
        text: str,
        mentioned_ids: list[str],
        from_me: bool,
    ) -> TriggerDecision: ...


class BasicTrigger:
    """Answers everything except our own and empty messages."""

    def should_respond(
        self,
        chat_id: str,
        sender_id: str,
        text: str,
        mentioned_ids: list[str],
        from_me: bool,
    ) -> TriggerDecision:
        if from_me:
            return TriggerDecision(False, "own message")
        if not text.strip():
            return TriggerDecision(False, "empty message")
        return TriggerDecision(True, "default")
