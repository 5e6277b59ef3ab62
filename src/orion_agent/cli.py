"""
Command-line interface for Orion Agent.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import structlog
from sqlalchemy.engine import make_url

from .config import Settings, get_settings

logger = structlog.get_logger()


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through stdlib logging with a console renderer."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=True),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def main() -> None:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="orion-agent",
        description="Orion Agent - LLM chat agent core",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    config_parser = subparsers.add_parser("config", help="Show configuration")
    config_parser.add_argument("--check", action="store_true", help="Check configuration validity")

    subparsers.add_parser("init", help="Create the data directory and database tables")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    settings = get_settings()
    configure_logging(settings.log_level)

    if args.command == "config":
        ok = show_config(settings, args.check)
        if not ok:
            sys.exit(1)
    elif args.command == "init":
        asyncio.run(init_store(settings))
    else:
        parser.print_help()


def check_config(settings: Settings) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a configuration."""
    errors = []
    warnings = []

    key_map = {
        "openai": settings.openai_api_key,
        "anthropic": settings.anthropic_api_key,
        "openrouter": settings.openrouter_api_key,
    }
    if not key_map.get(settings.default_provider):
        errors.append(f"No API key set for default provider '{settings.default_provider}'")

    if settings.max_tool_iterations < 1:
        errors.append("MAX_TOOL_ITERATIONS must be at least 1")

    if settings.max_context < 1000:
        warnings.append(f"MAX_CONTEXT is very small ({settings.max_context}), summaries will run constantly")

    if settings.summary_max_tokens >= settings.max_context // 2:
        warnings.append("SUMMARY_MAX_TOKENS is not well below half of MAX_CONTEXT")

    return errors, warnings


def show_config(settings: Settings, check: bool) -> bool:
    """Print the effective configuration. Returns False when the check fails."""

    def mask(value: str) -> str:
        if not value:
            return "(not set)"
        return value[:4] + "..." + value[-4:] if len(value) > 10 else "****"

    llm_config = settings.get_llm_config()

    print("\n=== Orion Agent Configuration ===\n")

    print("Agent:")
    print(f"  Name: {settings.agent_name}")
    print(f"  Max Tool Iterations: {settings.max_tool_iterations}")
    print(f"  Log Level: {settings.log_level}")

    print("\nLLM:")
    print(f"  Provider: {llm_config.provider}")
    print(f"  Model: {llm_config.model}")
    print(f"  Base URL: {llm_config.base_url or '(provider default)'}")
    print(f"  Max Context: {llm_config.max_context}")
    print(f"  OpenAI Key: {mask(settings.openai_api_key)}")
    print(f"  Anthropic Key: {mask(settings.anthropic_api_key)}")
    print(f"  OpenRouter Key: {mask(settings.openrouter_api_key)}")

    print("\nSummarization:")
    print(f"  Max Tokens: {settings.summary_max_tokens}")
    print(f"  Temperature: {settings.summary_temperature}")

    print("\nDatabase:")
    print(f"  URL: {settings.database_url}")

    if not check:
        return True

    print("\n=== Configuration Check ===\n")
    errors, warnings = check_config(settings)

    if errors:
        print("Errors:")
        for e in errors:
            print(f"   - {e}")

    if warnings:
        print("Warnings:")
        for w in warnings:
            print(f"   - {w}")

    if not errors and not warnings:
        print("Configuration looks good!")
    elif not errors:
        print("\nConfiguration is valid (with warnings)")
    else:
        print("\nConfiguration has errors - fix them before starting")

    return not errors


async def init_store(settings: Settings) -> None:
    """Create the SQLite data directory (if any) and all tables."""
    from .models import create_engine, init_database

    url = make_url(settings.database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(settings.database_url)
    try:
        await init_database(engine)
    finally:
        await engine.dispose()
    logger.info("Database initialized", database_url=settings.database_url)


if __name__ == "__main__":
    main()
