"""
Configuration management for Orion Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant."


class LLMConfig(BaseSettings):
    """Configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: Literal["openai", "anthropic", "openrouter"] = "openai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str | None = None
    max_tokens: int = 4096
    temperature: float = 0.7
    max_context: int = 128_000


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # Application
    app_name: str = "Orion-Agent"
    debug: bool = False
    log_level: str = "INFO"

    # Agent persona
    agent_name: str = Field(default="Orion", description="Name the agent uses in transcripts")
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="Base system prompt")

    # LLM Providers (API Keys)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    anthropic_api_key: str = Field(default="", description="Anthropic API key for Claude")
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    llm_base_url: str = Field(default="", description="Override base URL for OpenAI-compatible APIs")

    # Default model settings
    default_provider: Literal["openai", "anthropic", "openrouter"] = "openai"
    default_model: str = ""
    max_tokens: int = 4096
    temperature: float = 0.7
    max_context: int = Field(default=128_000, description="Model context size in tokens")

    # Agent loop
    max_tool_iterations: int = Field(default=10, description="Max LLM round trips per message")

    # Summarization
    summary_max_tokens: int = Field(default=1000, description="Output cap for summary completions")
    summary_temperature: float = Field(default=0.3, description="Temperature for summary completions")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/orion.db",
        description="Database connection URL"
    )

    @field_validator("agent_name", mode="before")
    @classmethod
    def parse_agent_name(cls, v: str) -> str:
        v = v.strip() if v else ""
        return v or "Orion"

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.default_provider

        api_key_map = {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "openrouter": self.openrouter_api_key,
        }

        model_map = {
            "openai": "gpt-4o",
            "anthropic": "claude-sonnet-4-20250514",
            "openrouter": "openai/gpt-4o",
        }

        base_url_map = {
            "openai": self.llm_base_url or None,
            "anthropic": None,
            "openrouter": self.llm_base_url or "https://openrouter.ai/api/v1",
        }

        return LLMConfig(
            provider=provider,  # type: ignore
            model=self.default_model or model_map.get(provider, "gpt-4o"),
            api_key=api_key_map.get(provider, ""),
            base_url=base_url_map.get(provider),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            max_context=self.max_context,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
