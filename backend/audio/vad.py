"""
A minimal, energy-based Voice Activity Detection (VAD) module.

Provides a simple RMS-energy threshold VAD for the microphone listener.
It operates on short, fixed-size audio frames (float32 samples) and reports
voice activity only after a configurable number of consecutive frames exceed
a given energy threshold.
"""
import numpy as np

from audio.pcm import rms
from spec import VAD_FRAMES_REQUIRED, VAD_RMS_THRESHOLD


class EnergyVAD:
    """
    Simple energy-based Voice Activity Detector (VAD).

    For each observed frame, the RMS energy is compared against a fixed
    threshold. Voice activity is considered present only after
    `frames_required` *consecutive* frames exceed the threshold, which avoids
    triggering on single-frame noise spikes.
    """
    def __init__(
        self,
        threshold: float = VAD_RMS_THRESHOLD,
        frames_required: int = VAD_FRAMES_REQUIRED,
    ):
        self._threshold = threshold
        self._frames_required = frames_required
        self._count = 0

    def observe(self, f32: np.ndarray) -> bool:
        """
        Observe a single audio frame and update VAD state.

        Returns:
            True once at least `frames_required` consecutive frames
            (including this one) have reached the energy threshold.
        """
        if rms(f32) >= self._threshold:
            self._count += 1
        else:
            self._count = 0
        return self._count >= self._frames_required

    def reset(self) -> None:
        """Clear the run of consecutive above-threshold frames."""
        self._count = 0
