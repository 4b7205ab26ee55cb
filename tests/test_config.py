import pytest

from callai.config import DEFAULT_VOICE_ID, Settings, validate_config


class TestValidateConfig:
    def test_exits_when_required_missing(self, monkeypatch, capsys):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi")
        with pytest.raises(SystemExit) as exc:
            validate_config()
        assert exc.value.code == 1
        assert "OPENAI_API_KEY" in capsys.readouterr().err

    def test_empty_value_counts_as_missing(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi")
        with pytest.raises(SystemExit):
            validate_config()

    def test_passes_when_required_set(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "xi")
        validate_config()


class TestSettings:
    def test_defaults(self, monkeypatch):
        for var in ("SILENCE_TIMEOUT_MS", "MIN_AUDIO_CHUNKS", "MAX_BUFFER_SIZE", "LANGUAGE",
                    "ELEVENLABS_VOICE_ID", "STREAM_LLM", "STT_PROVIDER"):
            monkeypatch.delenv(var, raising=False)
        settings = Settings.from_env()
        assert settings.language == "he"
        assert settings.silence_timeout_ms == 400
        assert settings.min_audio_chunks == 10
        assert settings.max_buffer_size == 60
        assert settings.elevenlabs_voice_id == DEFAULT_VOICE_ID
        assert settings.stream_llm is False
        assert settings.stt_provider == "whisper"

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SILENCE_TIMEOUT_MS", "700")
        monkeypatch.setenv("VAD_RMS_THRESHOLD", "500")
        monkeypatch.setenv("STREAM_LLM", "true")
        monkeypatch.setenv("TTS_NIKUD", "1")
        monkeypatch.setenv("STT_PROVIDER", "Failover")
        monkeypatch.setenv("LLM_TEMPERATURE", "0.2")
        settings = Settings.from_env()
        assert settings.silence_timeout_ms == 700
        assert settings.vad_rms_threshold == 500
        assert settings.stream_llm is True
        assert settings.tts_nikud is True
        assert settings.stt_provider == "failover"
        assert settings.llm_temperature == 0.2

    def test_flag_false_values(self, monkeypatch):
        monkeypatch.setenv("STREAM_LLM", "off")
        assert Settings.from_env().stream_llm is False
