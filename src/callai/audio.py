"""G.711 mu-law helpers for Twilio media frames.

Inbound frames arrive as base64 strings of 8 kHz mono mu-law (20 ms each).
Voice activity is an RMS threshold on the frame decoded to 16-bit linear
PCM; STT receives the utterance as a 16-bit PCM WAV so the encoded duration
stays correct whatever the provider expects.
"""
import audioop
import base64
import binascii
import io
import re
import wave

SAMPLE_RATE = 8000
SAMPLE_WIDTH = 2
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def _repad(payload: str) -> str:
    return payload + "=" * ((4 - len(payload) % 4) % 4)


def decode_frame(payload: str) -> bytes:
    """Decode one base64 frame, tolerating stray whitespace and missing padding."""
    cleaned = _NON_BASE64.sub("", payload.rstrip("="))
    return base64.b64decode(_repad(cleaned))


def decode_frames(frames: list[str]) -> bytes:
    """Join frames into one mu-law byte stream in arrival order.

    Each frame's own padding is stripped and the frame re-padded on its own
    before decoding; joining padded base64 text directly would corrupt every
    frame boundary that is not a multiple of three bytes.
    """
    return b"".join(decode_frame(frame) for frame in frames)


def frame_rms(payload: str) -> int:
    mulaw = decode_frame(payload)
    if not mulaw:
        return 0
    pcm = audioop.ulaw2lin(mulaw, SAMPLE_WIDTH)
    return audioop.rms(pcm, SAMPLE_WIDTH)


def has_voice(payload: str, threshold: int) -> bool:
    """Energy-threshold VAD. Undecodable frames count as voice."""
    try:
        return frame_rms(payload) > threshold
    except (binascii.Error, ValueError, audioop.error):
        return True


def mulaw_to_wav(mulaw: bytes, sample_rate: int = SAMPLE_RATE) -> bytes:
    pcm = audioop.ulaw2lin(mulaw, SAMPLE_WIDTH)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(SAMPLE_WIDTH)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buf.getvalue()


def chunk_payloads(mulaw: bytes, chunk_size: int = 160) -> list[str]:
    """Split outbound audio into fixed-size base64 media payloads."""
    return [
        base64.b64encode(mulaw[i : i + chunk_size]).decode("ascii")
        for i in range(0, len(mulaw), chunk_size)
    ]


def duration_seconds(mulaw: bytes, sample_rate: int = SAMPLE_RATE) -> float:
    return len(mulaw) / sample_rate
