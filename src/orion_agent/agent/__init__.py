"""
Agent module - the brain of the system.

Includes:
- Agent: Message processing with LLM + tools
- ContextBuilder: Indexed transcript from stored history
- ContextWindow: Rolling summarization
- AgentSession: The agent's own identity
"""

from .context import ContextBuilder, ContextResult, InputMessage
from .core import Agent, build_system_prompt, ensure_format, extract_content
from .session import AgentSession, SessionSnapshot
from .trigger import BasicTrigger, Trigger, TriggerDecision
from .window import ContextWindow, find_split_index

__all__ = [
    "Agent",
    "AgentSession",
    "BasicTrigger",
    "ContextBuilder",
    "ContextResult",
    "ContextWindow",
    "InputMessage",
    "SessionSnapshot",
    "Trigger",
    "TriggerDecision",
    "build_system_prompt",
    "ensure_format",
    "extract_content",
    "find_split_index",
]
