"""
Conversation history management.

Responsibilities:
- Store ordered user/assistant/system turns
- Enforce the turn cap:
  - Max 20 turns
  - Drop oldest turns first (FIFO) until the cap holds
- Provide a serializable representation for LLM consumption

Non-responsibilities:
- No request building (see context.serialization)
- No orchestration decisions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event
from spec import MAX_HISTORY_TURNS


Role = Literal["user", "assistant", "system"]


@dataclass(frozen=True)
class ConversationTurn:
    """Single conversation turn."""
    role: Role
    content: str


class ConversationHistory:
    """
    Bounded conversation history owned by the turn orchestrator.

    Invariants:
    - Turns are stored in chronological order
    - len(history) <= max_turns after every append
    """

    def __init__(self, max_turns: int = MAX_HISTORY_TURNS) -> None:
        if max_turns <= 0:
            raise ValueError("max_turns must be > 0")
        self._max_turns = max_turns
        self._turns: list[ConversationTurn] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_user(self, content: str) -> None:
        self._append(ConversationTurn(role="user", content=content))

    def add_assistant(self, content: str) -> None:
        self._append(ConversationTurn(role="assistant", content=content))

    def add_system(self, content: str) -> None:
        self._append(ConversationTurn(role="system", content=content))

    def clear(self) -> None:
        self._turns.clear()

    @property
    def turns(self) -> tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize turns into a role/content structure.

        Output format:
        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        return [
            {"role": t.role, "content": t.content}
            for t in self._turns
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append(self, turn: ConversationTurn) -> None:
        self._turns.append(turn)
        while len(self._turns) > self._max_turns:
            dropped = self._turns.pop(0)
            log_event({
                "event_type": "context_turn_dropped",
                "role": dropped.role,
                "char_count": len(dropped.content),
                "max_turns": self._max_turns,
            })
