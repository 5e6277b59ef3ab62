"""
Outbound messaging channel interface.
"""

from .base import BaseChannel, OutgoingMessage

__all__ = [
    "BaseChannel",
    "OutgoingMessage",
]
