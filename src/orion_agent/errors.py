"""
Error taxonomy for the agent core.

Only store and provider failures on the critical path reach the caller.
Tool failures are turned into structured results, summarization failures
are logged and skipped.
"""


class AgentError(Exception):
    """Base class for all agent core errors."""


class StoreError(AgentError):
    """A store query or write failed."""


class ProviderError(AgentError):
    """The LLM provider call failed or returned no choice."""


class ToolExecutionError(AgentError):
    """A tool failed while executing.

    Tools may raise this to report a failure with a clean message; the
    registry converts it into a `{"success": false, "error": ...}` result.
    """


class IterationLimitError(AgentError):
    """The tool-calling loop exceeded its round-trip cap."""

    def __init__(self, iterations: int):
        super().__init__(f"max tool iterations reached ({iterations})")
        self.iterations = iterations


class SummarizationError(AgentError):
    """Summarizing a conversation segment failed."""
