"""
Session identity for the agent.
"""

from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class SessionSnapshot:
    """Identity values a single processing run works with."""

    own_id: str = ""


class AgentSession:
    """Holds the account identity the agent speaks as.

    The transport sets the own id once it knows it (after connecting).
    Each processing run takes a snapshot at entry, so a late update never
    changes identity halfway through a run.
    """

    def __init__(self, own_id: str = ""):
        self._snapshot = SessionSnapshot(own_id=own_id)

    @property
    def own_id(self) -> str:
        return self._snapshot.own_id

    def set_own_id(self, own_id: str) -> None:
        """Record the agent's own sender id."""
        self._snapshot = SessionSnapshot(own_id=own_id)
        logger.info("Own identity set", own_id=own_id)

    def snapshot(self) -> SessionSnapshot:
        return self._snapshot
