"""
Audio device access.

sounddevice loads the PortAudio shared library when it is imported, so it is
imported on first use here rather than at module import time. Every device
failure (missing library, no device, stream errors) surfaces as
AudioDeviceError.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any


class AudioDeviceError(RuntimeError):
    """The audio device or its driver library is unavailable."""


@lru_cache(maxsize=1)
def _sounddevice() -> Any:
    try:
        import sounddevice  # pylint: disable=import-outside-toplevel
    except OSError as e:
        raise AudioDeviceError(f"PortAudio unavailable: {e}") from e
    return sounddevice


def open_output_stream(**kwargs: Any) -> Any:
    """Create and start a RawOutputStream."""
    sd = _sounddevice()
    try:
        stream = sd.RawOutputStream(**kwargs)
        stream.start()
    except sd.PortAudioError as e:
        raise AudioDeviceError(f"output stream: {e}") from e
    return stream


def open_input_stream(**kwargs: Any) -> Any:
    """Create and start a RawInputStream."""
    sd = _sounddevice()
    try:
        stream = sd.RawInputStream(**kwargs)
        stream.start()
        return stream
    except sd.PortAudioError as e:
        raise AudioDeviceError(f"input stream: {e}") from e


def close_stream(stream: Any) -> None:
    """Abort and close a stream."""
    sd = _sounddevice()
    try:
        stream.abort()
        stream.close()
    except sd.PortAudioError as e:
        raise AudioDeviceError(f"close stream: {e}") from e
