"""
LLM module for multi-provider AI model support.

Providers:
- OpenAI GPT (native SDK)
- Anthropic Claude (native SDK)
- OpenRouter (via OpenAI-compatible endpoint)
"""

from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolDefinition
from .anthropic import AnthropicLLM
from .openai import OpenAILLM
from .factory import create_llm
from .tokens import estimate_message_tokens, estimate_tokens

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "ToolDefinition",
    "AnthropicLLM",
    "OpenAILLM",
    "create_llm",
    "estimate_tokens",
    "estimate_message_tokens",
]
