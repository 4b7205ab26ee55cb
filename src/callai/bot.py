import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import Response
from pipecat.runner.utils import parse_telephony_websocket

from callai.analytics import WebhookLogger
from callai.collaborators import AudioTranscoder, EventLogger, ReplyGenerator, SpeechSynthesizer, SpeechToText
from callai.config import Settings, validate_config
from callai.keywords import KeywordTables
from callai.llm import OpenAIChatLLM
from callai.session import CallRegistry, CallSession
from callai.stt import ElevenLabsSTT, FailoverSTT, WhisperSTT
from callai.transcode import transcoder_for
from callai.transport import TwilioTransport, parse_message
from callai.tts import ElevenLabsTTS

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Vendor clients shared by every call on this process."""

    stt: SpeechToText
    llm: ReplyGenerator
    tts: SpeechSynthesizer
    transcoder: AudioTranscoder
    events: EventLogger
    tables: KeywordTables

    async def close(self):
        for client in (self.stt, self.llm, self.tts):
            close = getattr(client, "close", None)
            if close is not None:
                await close()
        drain = getattr(self.events, "drain", None)
        if drain is not None:
            await drain()


def create_services(settings: Settings) -> Services:
    whisper = WhisperSTT(settings.openai_api_key, timeout=settings.stt_timeout_s)
    if settings.stt_provider == "failover":
        stt = FailoverSTT(
            primary=whisper,
            secondary=ElevenLabsSTT(settings.elevenlabs_api_key, timeout=settings.stt_timeout_s),
            failure_threshold=settings.stt_failover_threshold,
            cooldown_seconds=settings.stt_failover_cooldown_s,
        )
    elif settings.stt_provider == "elevenlabs":
        stt = ElevenLabsSTT(settings.elevenlabs_api_key, timeout=settings.stt_timeout_s)
    else:
        stt = whisper

    llm = OpenAIChatLLM(
        settings.openai_api_key,
        model=settings.llm_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        stream=settings.stream_llm,
        timeout=settings.llm_timeout_s,
    )
    tts = ElevenLabsTTS(
        settings.elevenlabs_api_key,
        settings.elevenlabs_voice_id,
        output_format=settings.tts_output_format,
        nikud_llm=llm if settings.tts_nikud else None,
        timeout=settings.tts_timeout_s,
    )
    tables = KeywordTables.load(settings.keywords_file) if settings.keywords_file else KeywordTables()
    logger.info(
        "Services: STT=%s, LLM=%s%s, TTS voice=%s%s, analytics=%s",
        settings.stt_provider,
        settings.llm_model,
        " (streaming)" if settings.stream_llm else "",
        settings.elevenlabs_voice_id,
        " +nikud" if settings.tts_nikud else "",
        "on" if settings.n8n_webhook_url else "off",
    )
    return Services(
        stt=stt,
        llm=llm,
        tts=tts,
        transcoder=transcoder_for(settings.tts_output_format, timeout=settings.transcode_timeout_s),
        events=WebhookLogger(settings.n8n_webhook_url),
        tables=tables,
    )


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.services is None:
            validate_config()
            app.state.settings = Settings.from_env()
            app.state.services = create_services(app.state.settings)
        yield
        await app.state.registry.close_all()
        await app.state.services.close()

    app = FastAPI(title="Hebrew Sales Voice Agent", lifespan=lifespan)
    app.state.settings = settings or Settings()
    app.state.services = services
    app.state.registry = CallRegistry()
    app.state.started_at = time.time()

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "uptime": round(time.time() - app.state.started_at, 1),
            "activeCalls": len(app.state.registry),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/stats")
    async def stats():
        return {
            "activeCalls": len(app.state.registry),
            "calls": app.state.registry.stats(),
        }

    @app.api_route("/voice", methods=["GET", "POST"])
    async def voice(request: Request):
        """Serve TwiML that tells Twilio to open a media stream to this server."""
        host = request.headers.get("host", "localhost")
        xml = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<Response>'
            '<Connect>'
            f'<Stream url="wss://{host}/media-stream" />'
            '</Connect>'
            '</Response>'
        )
        return Response(content=xml, media_type="application/xml")

    @app.websocket("/media-stream")
    async def media_stream(websocket: WebSocket):
        await websocket.accept()
        await run_call(websocket, app.state.settings, app.state.services, app.state.registry)

    return app


async def run_call(websocket: WebSocket, settings: Settings, services: Services, registry: CallRegistry):
    """Drive one Twilio media stream from handshake to hang-up."""
    try:
        transport_type, call_data = await parse_telephony_websocket(websocket)
    except Exception as e:
        logger.error(f"Telephony handshake failed: {e}")
        await websocket.close()
        return

    stream_sid = call_data["stream_id"]
    call_sid = call_data["call_id"]
    caller = call_data.get("body", {}).get("From", "")
    logger.info(f"Twilio handshake: transport={transport_type}, call={call_sid}, stream={stream_sid}")

    session = CallSession(
        call_sid,
        TwilioTransport(websocket, stream_sid),
        stt=services.stt,
        llm=services.llm,
        tts=services.tts,
        transcoder=services.transcoder,
        events=services.events,
        settings=settings,
        tables=services.tables,
        stream_id=stream_sid,
        caller=caller,
    )
    registry.add(session)
    session.start()

    try:
        while True:
            message = parse_message(await websocket.receive_text())
            if message is None:
                continue
            if message.event == "media":
                session.ingest(message.payload)
            elif message.event == "stop":
                logger.info(f"Stream stopped: {call_sid}")
                break
    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {call_sid}")
    finally:
        await registry.remove(call_sid)


app = create_app()


def main():
    validate_config()
    port = int(os.getenv("PORT", "3000"))
    uvicorn.run("callai.bot:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
