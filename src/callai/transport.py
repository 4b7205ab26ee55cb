"""Twilio Media Streams message handling."""

import json
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

KNOWN_EVENTS = {"connected", "start", "media", "mark", "stop", "dtmf"}


@dataclass
class InboundMessage:
    event: str
    payload: str = ""
    stream_sid: str = ""
    call_sid: str = ""


def parse_message(raw: str) -> Optional[InboundMessage]:
    """Parse one inbound WebSocket text message. Malformed input returns None."""
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Dropping unparseable message: %s", e)
        return None
    if not isinstance(data, dict) or data.get("event") not in KNOWN_EVENTS:
        logger.warning("Dropping message with unknown event: %.80s", raw)
        return None

    event = data["event"]
    message = InboundMessage(event=event, stream_sid=data.get("streamSid") or "")
    if event == "media":
        payload = (data.get("media") or {}).get("payload")
        if not isinstance(payload, str):
            logger.warning("Dropping media message without payload")
            return None
        message.payload = payload
    elif event == "start":
        start = data.get("start") or {}
        message.stream_sid = start.get("streamSid") or message.stream_sid
        message.call_sid = start.get("callSid") or ""
    return message


class TwilioTransport:
    """Outbound side of one call's media stream."""

    def __init__(self, websocket, stream_sid: str):
        self.websocket = websocket
        self.stream_sid = stream_sid
        self.sent = 0
        self.failed = 0

    async def send(self, payload: str) -> bool:
        message = json.dumps({
            "event": "media",
            "streamSid": self.stream_sid,
            "media": {"payload": payload},
        })
        try:
            await self.websocket.send_text(message)
        except Exception as e:
            self.failed += 1
            logger.warning("Media send failed on stream %s: %s", self.stream_sid, e)
            return False
        self.sent += 1
        return True
