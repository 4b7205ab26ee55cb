"""Startup configuration.

``validate_config()`` checks that all required environment variables are
set before the server accepts connections, so a missing vendor key causes a
clear startup failure rather than a silent mid-call crash.  ``Settings``
carries every tunable the call core reads; none of them is hard-coded in the
algorithms.
"""

import logging
import os
import sys
from dataclasses import dataclass

logger = logging.getLogger(__name__)

REQUIRED_VARS = [
    "OPENAI_API_KEY",
    "ELEVENLABS_API_KEY",
]

OPTIONAL_VARS = [
    "ELEVENLABS_VOICE_ID",
    "N8N_WEBHOOK_URL",
    "KEYWORDS_FILE",
    "STT_PROVIDER",
    "LOG_LEVEL",
]

DEFAULT_VOICE_ID = "exsUS4vynmxd379XN4yO"


def validate_config() -> None:
    """Validate environment variables at startup.

    Exits the process with a clear error if any required variable is missing
    or empty.  Logs warnings for missing optional variables.
    """
    missing = [var for var in REQUIRED_VARS if not os.getenv(var)]

    if missing:
        print(
            f"\nFATAL: Missing required environment variables:\n"
            f"  {', '.join(missing)}\n"
            f"\nSet them in .env or in the deployment environment.\n",
            file=sys.stderr,
        )
        sys.exit(1)

    for var in OPTIONAL_VARS:
        if not os.getenv(var):
            logger.warning("Optional env var %s is not set", var)


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    openai_api_key: str = ""
    elevenlabs_api_key: str = ""
    elevenlabs_voice_id: str = DEFAULT_VOICE_ID
    n8n_webhook_url: str = ""
    keywords_file: str = ""

    language: str = "he"
    agent_name: str = "דני"

    # Turn detection
    silence_timeout_ms: int = 400
    min_audio_chunks: int = 10
    max_buffer_size: int = 60
    vad_rms_threshold: int = 300

    # Outbound pacing
    outbound_chunk_bytes: int = 160
    outbound_chunk_delay_ms: int = 20

    # Collaborator timeouts
    stt_timeout_s: float = 30.0
    llm_timeout_s: float = 30.0
    tts_timeout_s: float = 30.0
    transcode_timeout_s: float = 15.0

    stt_provider: str = "whisper"
    stt_failover_threshold: int = 3
    stt_failover_cooldown_s: float = 60.0

    llm_model: str = "gpt-4o"
    llm_max_tokens: int = 150
    llm_temperature: float = 0.7
    stream_llm: bool = False
    recent_messages: int = 6

    tts_output_format: str = "mp3_44100_128"
    tts_nikud: bool = False

    port: int = 3000

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY", ""),
            elevenlabs_voice_id=os.getenv("ELEVENLABS_VOICE_ID", DEFAULT_VOICE_ID),
            n8n_webhook_url=os.getenv("N8N_WEBHOOK_URL", ""),
            keywords_file=os.getenv("KEYWORDS_FILE", ""),
            language=os.getenv("LANGUAGE", "he"),
            agent_name=os.getenv("AGENT_NAME", "דני"),
            silence_timeout_ms=int(os.getenv("SILENCE_TIMEOUT_MS", "400")),
            min_audio_chunks=int(os.getenv("MIN_AUDIO_CHUNKS", "10")),
            max_buffer_size=int(os.getenv("MAX_BUFFER_SIZE", "60")),
            vad_rms_threshold=int(os.getenv("VAD_RMS_THRESHOLD", "300")),
            outbound_chunk_bytes=int(os.getenv("OUTBOUND_CHUNK_BYTES", "160")),
            outbound_chunk_delay_ms=int(os.getenv("OUTBOUND_CHUNK_DELAY_MS", "20")),
            stt_timeout_s=float(os.getenv("STT_TIMEOUT_S", "30")),
            llm_timeout_s=float(os.getenv("LLM_TIMEOUT_S", "30")),
            tts_timeout_s=float(os.getenv("TTS_TIMEOUT_S", "30")),
            transcode_timeout_s=float(os.getenv("TRANSCODE_TIMEOUT_S", "15")),
            stt_provider=os.getenv("STT_PROVIDER", "whisper").lower(),
            stt_failover_threshold=int(os.getenv("STT_FAILOVER_THRESHOLD", "3")),
            stt_failover_cooldown_s=float(os.getenv("STT_FAILOVER_COOLDOWN_S", "60")),
            llm_model=os.getenv("LLM_MODEL", "gpt-4o"),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "150")),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            stream_llm=_flag("STREAM_LLM"),
            recent_messages=int(os.getenv("RECENT_MESSAGES", "6")),
            tts_output_format=os.getenv("TTS_OUTPUT_FORMAT", "mp3_44100_128"),
            tts_nikud=_flag("TTS_NIKUD"),
            port=int(os.getenv("PORT", "3000")),
        )
