"""
Synthesis tier enumeration.

Rules:
- Declaration order is fallback priority order.
- The synthesis orchestrator decides which tiers are configured.
"""

from __future__ import annotations

from enum import Enum


class SynthesisTier(str, Enum):
    """Speech synthesis tiers, highest priority first."""

    STREAMING = "STREAMING"
    BATCH = "BATCH"
    OFFLINE = "OFFLINE"
