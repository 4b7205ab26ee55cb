import logging

import httpx

logger = logging.getLogger(__name__)

ELEVENLABS_TTS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"

NIKUD_PROMPT = """אתה מומחה לניקוד עברי. תפקידך להוסיף ניקוד מדויק לטקסט עברי.

חוקים:
1. הוסף את כל סימני הניקוד (קמץ, פתח, צירה, סגול, חולם, שורוק, קובוץ, וכו')
2. שמור על הטקסט המקורי - רק הוסף ניקוד
3. ניקוד חייב להיות מדויק לפי הקשר המשפט
4. החזר רק את הטקסט המנוקד, ללא הסברים"""

VOICE_SETTINGS = {
    "stability": 0.35,
    "similarity_boost": 0.85,
    "style": 0.65,
    "use_speaker_boost": True,
}


class ElevenLabsTTS:
    """ElevenLabs HTTP synthesis.

    Returns audio in ``output_format`` (MP3 by default); the transcoder turns
    it into telephony mu-law.  With a ``nikud_llm`` the text is vowelized
    first, which noticeably improves Hebrew pronunciation; a failed nikud
    pass falls back to the plain text.
    """

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        model_id: str = "eleven_multilingual_v2",
        output_format: str = "mp3_44100_128",
        nikud_llm=None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self.nikud_llm = nikud_llm
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        await self._client.aclose()

    async def add_nikud(self, text: str) -> str:
        if self.nikud_llm is None:
            return text
        try:
            vowelized = await self.nikud_llm.complete(
                [
                    {"role": "system", "content": NIKUD_PROMPT},
                    {"role": "user", "content": f"נקד את הטקסט הבא בצורה מדויקת:\n\n{text}"},
                ],
                temperature=0.3,
                max_tokens=500,
            )
        except Exception as e:
            logger.warning("Nikud pass failed, using plain text: %s", e)
            return text
        return vowelized or text

    async def synthesize(self, text: str) -> bytes:
        text = await self.add_nikud(text)
        resp = await self._client.post(
            ELEVENLABS_TTS_URL.format(voice_id=self.voice_id),
            params={"output_format": self.output_format},
            headers={
                "xi-api-key": self.api_key,
                "Content-Type": "application/json",
                "Accept": "audio/mpeg",
            },
            json={
                "text": text,
                "model_id": self.model_id,
                "voice_settings": VOICE_SETTINGS,
            },
        )
        resp.raise_for_status()
        return resp.content
