"""
Synthesis orchestrator (tiered fallback chain).

Responsibilities:
- Expose one suspension point: speak(text) resolves when playback finished
  or the request was superseded
- Run tiers in priority order (streaming -> batch -> offline), each only if
  the previous one is not configured or failed
- Enforce last-request-wins: a new speak() cancels the in-flight one before
  any new audio starts
- Bound each tier attempt with a safety timeout proportional to text length

Non-responsibilities:
- No retries within a tier
- No decisions about what to say
- No agent state transitions

Errors:
- Tier failures are logged and absorbed; nothing propagates to the caller.
"""

from __future__ import annotations

import asyncio
from typing import Sequence

from adapters.tts.base import SpeechSynthesizer, SynthesisError, SynthesisRequest
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.enums.tier import SynthesisTier
from spec import tier_timeout_s


class SynthesisOrchestrator:
    """
    Runs the fallback chain for one agent.

    Invariants:
    - At most one chain task runs at a time (self._current)
    - A superseded speak() returns None and triggers no fallback
    """

    def __init__(
        self,
        tiers: Sequence[SpeechSynthesizer],
        *,
        language: str = "en",
        voice_id: str | None = None,
        streaming_enabled: bool = True,
    ) -> None:
        self._tiers = list(tiers)
        self._language = language
        self._voice_id = voice_id
        self._streaming_enabled = streaming_enabled
        self._current: asyncio.Task[SynthesisTier | None] | None = None
        # Bumped by every speak() and cancel(); a speak() that wakes from
        # superseding with a stale generation never starts a chain.
        self._generation = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()

    async def speak(self, text: str, language: str | None = None) -> SynthesisTier | None:
        """
        Speak text through the first tier that succeeds.

        Returns the tier that produced audio, or None when the text was blank,
        every tier failed, or a newer speak() superseded this one.
        """
        if not text or not text.strip():
            log_event({"event_type": "tts_skipped_blank"})
            return None

        self._generation += 1
        generation = self._generation
        await self._supersede()

        request = SynthesisRequest(
            text=text.strip(),
            language=language or self._language,
            voice_id=self._voice_id,
        )
        if generation != self._generation:
            log_event({"event_type": "tts_superseded", "chars": len(request.text)})
            return None

        task = asyncio.create_task(self._run_chain(request))
        self._current = task

        def _cleanup(t: asyncio.Task[SynthesisTier | None]) -> None:
            if self._current is t:
                self._current = None

        task.add_done_callback(_cleanup)

        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task.cancelled():
            log_event({"event_type": "tts_superseded", "chars": len(request.text)})
            return None
        return task.result()

    def cancel(self) -> None:
        """Stop any in-flight speech now. Sync; tier sinks close before return."""
        self._generation += 1
        task = self._current
        if task is not None and not task.done():
            task.cancel()
        for tier in self._tiers:
            tier.cancel()

    async def close(self) -> None:
        task = self._current
        self.cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        for tier in self._tiers:
            await tier.close()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _supersede(self) -> None:
        previous = self._current
        if previous is None or previous.done():
            return
        previous.cancel()
        await asyncio.gather(previous, return_exceptions=True)

    def _eligible(self, tier: SpeechSynthesizer) -> bool:
        if tier.tier == SynthesisTier.STREAMING and not self._streaming_enabled:
            return False
        return tier.configured

    async def _run_chain(self, request: SynthesisRequest) -> SynthesisTier | None:
        timeout_s = tier_timeout_s(request.text)

        for tier in self._tiers:
            if not self._eligible(tier):
                log_event({
                    "event_type": "tts_tier_skipped",
                    "tier": tier.tier.value,
                })
                continue

            with timed("tts_tier_speak", details={"tier": tier.tier.value}) as details:
                try:
                    await asyncio.wait_for(tier.speak(request), timeout=timeout_s)
                except SynthesisError as e:
                    details["ok"] = False
                    self._log_fallback(tier, e.reason)
                    continue
                except asyncio.TimeoutError:
                    details["ok"] = False
                    tier.cancel()
                    self._log_fallback(tier, f"timed out after {timeout_s:.1f}s")
                    continue
                except Exception as e:  # pylint: disable=broad-exception-caught
                    details["ok"] = False
                    tier.cancel()
                    self._log_fallback(tier, repr(e))
                    continue
                details["ok"] = True

            return tier.tier

        log_event({
            "event_type": "tts_exhausted",
            "level": "WARNING",
            "chars": len(request.text),
        })
        return None

    @staticmethod
    def _log_fallback(tier: SpeechSynthesizer, reason: str) -> None:
        log_event({
            "event_type": "tts_tier_failed",
            "level": "WARNING",
            "tier": tier.tier.value,
            "reason": reason,
        })
