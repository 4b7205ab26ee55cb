import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from callai.transport import TwilioTransport, parse_message


class TestParseMessage:
    def test_media(self):
        raw = json.dumps({"event": "media", "streamSid": "MZ1", "media": {"track": "inbound", "payload": "//8="}})
        message = parse_message(raw)
        assert message.event == "media"
        assert message.payload == "//8="
        assert message.stream_sid == "MZ1"

    def test_start(self):
        raw = json.dumps({"event": "start", "start": {"streamSid": "MZ1", "callSid": "CA1"}})
        message = parse_message(raw)
        assert message.stream_sid == "MZ1"
        assert message.call_sid == "CA1"

    def test_stop(self):
        assert parse_message('{"event": "stop", "streamSid": "MZ1"}').event == "stop"

    def test_invalid_json(self):
        assert parse_message("{not json") is None

    def test_unknown_event(self):
        assert parse_message('{"event": "party"}') is None

    def test_not_an_object(self):
        assert parse_message("[1, 2]") is None

    def test_media_without_payload(self):
        assert parse_message('{"event": "media", "media": {}}') is None


class TestTwilioTransport:
    @pytest.mark.asyncio
    async def test_sends_media_message(self):
        ws = MagicMock()
        ws.send_text = AsyncMock()
        transport = TwilioTransport(ws, "MZ1")
        assert await transport.send("//8=") is True
        sent = json.loads(ws.send_text.call_args.args[0])
        assert sent == {"event": "media", "streamSid": "MZ1", "media": {"payload": "//8="}}
        assert transport.sent == 1

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        ws = MagicMock()
        ws.send_text = AsyncMock(side_effect=RuntimeError("socket closed"))
        transport = TwilioTransport(ws, "MZ1")
        assert await transport.send("//8=") is False
        assert transport.failed == 1
