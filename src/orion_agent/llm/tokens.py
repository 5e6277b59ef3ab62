"""
Token estimation used for context budgeting.
"""

# Approximate characters per token
CHARS_PER_TOKEN = 4

# Role/formatting overhead added per message
MESSAGE_OVERHEAD = 4


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a piece of text."""
    return len(text) // CHARS_PER_TOKEN


def estimate_message_tokens(text: str) -> int:
    """Estimate the cost of one transcript entry with the given content."""
    return estimate_tokens(text) + MESSAGE_OVERHEAD
