"""
BEHAVIORAL CONSTANTS
--------------------
Single source of truth for all behavioral invariants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format
# =============================================================================

AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_CHANNELS: Final[int] = 1

# Synthesis output (streaming + batch tiers)
TTS_SAMPLE_RATE_HZ: Final[int] = 24_000

# Microphone capture for speech-to-text
MIC_SAMPLE_RATE_HZ: Final[int] = 16_000
MIC_FRAME_MS: Final[int] = 20
MIC_SAMPLES_PER_FRAME: Final[int] = (MIC_SAMPLE_RATE_HZ * MIC_FRAME_MS) // 1000

# =============================================================================
# Turn loop timing
# =============================================================================

# Pause after a spoken reply before listening again
POST_TURN_PAUSE_MS: Final[int] = 300

# Pause after an empty listen before listening again
IDLE_RELISTEN_PAUSE_MS: Final[int] = 500

# Trailing-silence cutoffs handed to the listener
LISTEN_POSSIBLY_COMPLETE_SILENCE_MS: Final[int] = 3_000
LISTEN_COMPLETE_SILENCE_MS: Final[int] = 4_000

# No speech at all within this window -> empty transcript
LISTEN_NO_SPEECH_TIMEOUT_MS: Final[int] = 8_000
LISTEN_MAX_UTTERANCE_MS: Final[int] = 30_000

# Energy VAD used by the microphone listener
VAD_RMS_THRESHOLD: Final[float] = 0.02
VAD_FRAMES_REQUIRED: Final[int] = 3

# Typed input buffered while the loop is busy
TEXT_INPUT_QUEUE_MAX: Final[int] = 5

# =============================================================================
# Conversation context
# =============================================================================

MAX_HISTORY_TURNS: Final[int] = 20
CONVERSATION_LOG_REPLAY: Final[int] = 50
CONVERSATION_LOG_SUBSCRIBER_BUFFER: Final[int] = 20

SCREEN_CONTEXT_MAX_CHARS: Final[int] = 2_000
WEB_CONTEXT_MAX_CHARS: Final[int] = 1_500
NOTIFICATION_CONTEXT_COUNT: Final[int] = 5
NOTIFICATION_ANNOUNCE_COUNT: Final[int] = 3
NOTIFICATION_FEED_MAX: Final[int] = 100

READ_MESSAGES_DEFAULT_COUNT: Final[int] = 5
READ_SCREEN_LOG_MAX_CHARS: Final[int] = 500

LOW_BATTERY_WARN_PERCENT: Final[int] = 20

# =============================================================================
# Reasoning backend
# =============================================================================

LLM_REQUEST_TIMEOUT_S: Final[float] = 60.0
LLM_TEMPERATURE: Final[float] = 0.7
LLM_MAX_TOKENS: Final[int] = 2_048

# Apology strings quote at most this much of the backend error
APOLOGY_ERROR_MAX_CHARS: Final[int] = 50

# =============================================================================
# Directive parsing
# =============================================================================

DIRECTIVE_MAX_DEPTH: Final[int] = 8

# =============================================================================
# Streaming synthesis (WebSocket tier)
# =============================================================================

CARTESIA_VERSION: Final[str] = "2024-06-10"
CARTESIA_WS_URL: Final[str] = "wss://api.cartesia.ai/tts/websocket"
CARTESIA_BYTES_URL: Final[str] = "https://api.cartesia.ai/tts/bytes"
CARTESIA_DEFAULT_MODEL_ID: Final[str] = "sonic-2024-10-01"
CARTESIA_DEFAULT_VOICE_ID: Final[str] = "a0e99841-438c-4a64-b679-ae501e7d6091"

TTS_CONNECT_TIMEOUT_MS: Final[int] = 5_000
TTS_CONNECT_POLL_MS: Final[int] = 50
TTS_RECONNECT_BACKOFF_MS: Final[int] = 3_000
TTS_KEEPALIVE_INTERVAL_S: Final[float] = 30.0
TTS_WS_MAX_MESSAGE_BYTES: Final[int] = 2**22

# Grace for buffered audio after the final chunk
TTS_DRAIN_GRACE_MS: Final[int] = 500

TTS_FIRST_AUDIO_TIMEOUT_MS: Final[int] = 6_000
TTS_STALL_TIMEOUT_S: Final[float] = 8.0

TTS_CONTEXT_ID_CHARS: Final[int] = 16

# Playback sink: device latency hint and callback block size
PLAYBACK_LATENCY: Final[str] = "low"
PLAYBACK_BLOCK_FRAMES: Final[int] = 1_024

# =============================================================================
# Batch + offline synthesis
# =============================================================================

BATCH_WAV_HEADER_BYTES: Final[int] = 44
BATCH_REQUEST_TIMEOUT_S: Final[float] = 30.0

OFFLINE_MAX_CHUNK_CHARS: Final[int] = 3_900
OFFLINE_DEFAULT_RATE_WPM: Final[int] = 180

# Safety bound per tier attempt: base + per character of text
TTS_TIER_TIMEOUT_BASE_S: Final[float] = 15.0
TTS_TIER_TIMEOUT_PER_CHAR_S: Final[float] = 0.12

# =============================================================================
# Shutdown phrases (case-insensitive substring match)
# =============================================================================

DEFAULT_SHUTDOWN_PHRASES: Final[Tuple[str, ...]] = (
    "jarvis bondho",
    "jarvis bndho",
    "jarvis stop",
    "jarvis off",
    "stop jarvis",
    "shut down",
    "বন্ধ হও",
    "বন্ধ হয়ে যাও",
)


# =============================================================================
# Helper Functions
# =============================================================================

def pcm_duration_s(num_bytes: int, sample_rate_hz: int = TTS_SAMPLE_RATE_HZ) -> float:
    """
    Playback duration of mono PCM16 audio.

    Defensive behavior:
    - Non-positive input returns 0.0.
    """
    if num_bytes <= 0:
        return 0.0
    return num_bytes / float(sample_rate_hz * AUDIO_SAMPLE_WIDTH_BYTES * AUDIO_CHANNELS)


def tier_timeout_s(text: str) -> float:
    """Upper bound for one synthesis tier attempt on `text`."""
    return TTS_TIER_TIMEOUT_BASE_S + len(text) * TTS_TIER_TIMEOUT_PER_CHAR_S
