import audioop
import base64


def mulaw_frame(amplitude: int, samples: int = 160) -> str:
    """Base64 mu-law frame of a square wave at the given 16-bit amplitude."""
    pcm = b"".join(
        (amplitude if i % 2 else -amplitude).to_bytes(2, "little", signed=True)
        for i in range(samples)
    )
    return base64.b64encode(audioop.lin2ulaw(pcm, 2)).decode("ascii")


LOUD = mulaw_frame(8000)
QUIET = mulaw_frame(0)


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
