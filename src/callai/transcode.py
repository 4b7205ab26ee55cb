"""Convert synthesized speech to 8 kHz mono mu-law for the telephony stream.

MP3 from ElevenLabs goes through an ``ffmpeg`` subprocess.  Raw PCM output
formats (``pcm_16000`` and friends) skip the subprocess and are resampled
in-process with ``audioop.ratecv`` before mu-law encoding.
"""
import asyncio
import audioop
import logging

from callai.audio import SAMPLE_RATE, SAMPLE_WIDTH

logger = logging.getLogger(__name__)


class TranscodeError(RuntimeError):
    pass


class FfmpegTranscoder:
    def __init__(self, ffmpeg: str = "ffmpeg", timeout: float = 15.0, sample_rate: int = SAMPLE_RATE):
        self.ffmpeg = ffmpeg
        self.timeout = timeout
        self.sample_rate = sample_rate

    def command(self) -> list[str]:
        return [
            self.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-ar", str(self.sample_rate),
            "-ac", "1",
            "-f", "mulaw",
            "pipe:1",
        ]

    async def to_mulaw(self, audio: bytes) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.command(),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"could not start {self.ffmpeg}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(audio), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TranscodeError(f"ffmpeg timed out after {self.timeout:.0f}s")

        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise TranscodeError(f"ffmpeg exited with {proc.returncode}: {detail}")
        logger.debug("Transcoded %d bytes -> %d bytes mu-law", len(audio), len(stdout))
        return stdout


class PcmTranscoder:
    """Little-endian 16-bit mono PCM at ``in_rate`` to telephony mu-law."""

    def __init__(self, in_rate: int, target_rate: int = SAMPLE_RATE):
        self.in_rate = in_rate
        self.target_rate = target_rate

    async def to_mulaw(self, audio: bytes) -> bytes:
        if len(audio) % SAMPLE_WIDTH:
            audio = audio[:-1]
        if self.in_rate != self.target_rate:
            audio, _ = audioop.ratecv(audio, SAMPLE_WIDTH, 1, self.in_rate, self.target_rate, None)
        return audioop.lin2ulaw(audio, SAMPLE_WIDTH)


def transcoder_for(output_format: str, timeout: float = 15.0):
    """Pick the transcoder matching an ElevenLabs ``output_format`` string."""
    if output_format.startswith("pcm_"):
        return PcmTranscoder(in_rate=int(output_format.split("_", 1)[1]))
    return FfmpegTranscoder(timeout=timeout)
