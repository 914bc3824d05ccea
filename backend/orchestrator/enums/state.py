"""
Authoritative agent state enumeration.

Rules:
- This enum defines ONLY the turn-loop states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in orchestrator.agent.
"""

from __future__ import annotations

from enum import Enum


class AgentState(str, Enum):
    """
    High-level control states of one agent activation.

    These states represent orchestration intent, NOT connection status
    and NOT adapter lifecycles.
    """

    INACTIVE = "INACTIVE"
    GREETING = "GREETING"
    LISTENING = "LISTENING"
    THINKING = "THINKING"
    SPEAKING = "SPEAKING"
    EXECUTING = "EXECUTING"
    PAUSED = "PAUSED"
