"""Configuration helpers for the mirror voice assistant."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant for a smart mirror. Keep responses concise and friendly."
)
DEFAULT_APOLOGY = "Sorry, I encountered an error processing your request."


@dataclass
class AppConfig:
    """
    Runtime configuration for the assistant.

    Attributes:
        ai_provider: "openai", "gemini" or "http" chat backend.
        openai_api_key: Bearer token for the OpenAI-compatible backend.
        openai_base_url: Root URL of the OpenAI-compatible server.
        openai_model: Model name for the OpenAI-compatible backend.
        gemini_api_key: API key for the Gemini backend.
        gemini_model: Gemini model name.
        chat_url: Root URL of the generic `/chat` backend (ai_provider=http).
        chat_api_key: Optional bearer token for the generic backend.
        request_timeout: HTTP timeout in seconds for chat and synthesis.
        system_prompt: System message sent with every request.
        max_chat_history: Exchanges kept in history (turns = 2x).
        context_turns: History turns sent to the backend per request.
        max_tokens: Completion length cap.
        temperature: Sampling temperature.
        wake_word: Wake phrase shown to the user.
        wake_engine: "openwakeword" or "porcupine".
        wake_model_paths: openWakeWord model paths; defaults to built-ins.
        wake_threshold: openWakeWord detection threshold (0-1).
        porcupine_access_key: Picovoice access key.
        porcupine_keyword_paths: Porcupine `.ppn` keyword files.
        porcupine_sensitivity: Porcupine sensitivity (0-1).
        audio_device: Optional input device index/name.
        language: BCP-47 language code for STT and TTS.
        stt_mode: "stream", "wyoming" or "whisper".
        stt_url: WebSocket URL of the streaming recognizer (stt_mode=stream).
        stt_api_key: Optional bearer token for the streaming recognizer.
        whisper_host: Wyoming Whisper host (stt_mode=wyoming).
        whisper_port: Wyoming Whisper port (stt_mode=wyoming).
        whisper_model: Whisper model size (stt_mode=whisper).
        whisper_device: Device for Whisper ("cpu"/"cuda"/None).
        silence_duration: Seconds of silence ending an utterance (wyoming/whisper).
        silence_threshold: Mean level treated as speech (wyoming/whisper).
        tts_mode: "cloud", "wyoming" or "console".
        tts_url: Root URL of the cloud synthesis service.
        tts_api_key: API key for the cloud synthesis service.
        voice_name: Cloud voice name.
        voice_gender: Cloud voice ssmlGender.
        tts_sample_rate: Cloud synthesis sample rate (Hz).
        speaking_rate: Cloud speaking rate multiplier.
        pitch: Cloud pitch adjustment.
        piper_host: Wyoming Piper host (tts_mode=wyoming).
        piper_port: Wyoming Piper port (tts_mode=wyoming).
        piper_speaker: Optional Piper speaker id/name.
        command_timeout: Seconds to wait for a final transcript after the wake word.
        response_timeout: Seconds to wait for the chat backend (incl. tools).
        speak_timeout: Seconds allowed for synthesis plus playback.
        settle_delay: Pause after releasing the microphone before reopening it.
        apology: Phrase spoken when the backend fails; empty disables it.

    Usage:
        >>> config = AppConfig.from_env()
        >>> config.wake_word
        'hey mirror'
    """

    ai_provider: str = "gemini"
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com"
    openai_model: str = "gpt-3.5-turbo"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    chat_url: str = "http://localhost:8000"
    chat_api_key: Optional[str] = None
    request_timeout: float = 30.0
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_chat_history: int = 10
    context_turns: int = 6
    max_tokens: int = 150
    temperature: float = 0.7
    wake_word: str = "hey mirror"
    wake_engine: str = "openwakeword"
    wake_model_paths: List[str] = field(default_factory=list)
    wake_threshold: float = 0.5
    porcupine_access_key: Optional[str] = None
    porcupine_keyword_paths: List[str] = field(default_factory=list)
    porcupine_sensitivity: float = 0.5
    audio_device: Optional[str] = None
    language: str = "en-US"
    stt_mode: str = "stream"
    stt_url: str = "ws://localhost:8080/v1/speech:streamingRecognize"
    stt_api_key: Optional[str] = None
    whisper_host: str = "localhost"
    whisper_port: int = 10300
    whisper_model: str = "tiny"
    whisper_device: Optional[str] = None
    silence_duration: float = 1.5
    silence_threshold: float = 0.01
    tts_mode: str = "cloud"
    tts_url: str = "https://texttospeech.googleapis.com"
    tts_api_key: Optional[str] = None
    voice_name: Optional[str] = None
    voice_gender: str = "FEMALE"
    tts_sample_rate: int = 24000
    speaking_rate: float = 0.9
    pitch: float = 0.0
    piper_host: str = "localhost"
    piper_port: int = 10200
    piper_speaker: Optional[str] = None
    command_timeout: float = 15.0
    response_timeout: float = 60.0
    speak_timeout: float = 120.0
    settle_delay: float = 0.3
    apology: str = DEFAULT_APOLOGY

    @classmethod
    def from_env(cls, *, dotenv: bool = True) -> "AppConfig":
        """
        Build an :class:`AppConfig` from ``MIRROR_*`` environment variables.

        A ``.env`` file in the working directory is loaded first (existing
        variables win). Every attribute maps to ``MIRROR_<ATTRIBUTE>`` in upper
        case, e.g. ``MIRROR_AI_PROVIDER``, ``MIRROR_COMMAND_TIMEOUT``. List
        attributes (``MIRROR_WAKE_MODEL_PATHS``, ``MIRROR_PORCUPINE_KEYWORD_PATHS``)
        are comma separated.

        Raises:
            ValueError: If a numeric variable cannot be parsed or a mode is unknown.
        """
        if dotenv:
            load_dotenv()

        defaults = cls()
        config = cls(
            ai_provider=_env_str("MIRROR_AI_PROVIDER", defaults.ai_provider).lower(),
            openai_api_key=_env_optional("MIRROR_OPENAI_API_KEY"),
            openai_base_url=_env_str("MIRROR_OPENAI_BASE_URL", defaults.openai_base_url).rstrip("/"),
            openai_model=_env_str("MIRROR_OPENAI_MODEL", defaults.openai_model),
            gemini_api_key=_env_optional("MIRROR_GEMINI_API_KEY"),
            gemini_model=_env_str("MIRROR_GEMINI_MODEL", defaults.gemini_model),
            chat_url=_env_str("MIRROR_CHAT_URL", defaults.chat_url).rstrip("/"),
            chat_api_key=_env_optional("MIRROR_CHAT_API_KEY"),
            request_timeout=_env_float("MIRROR_REQUEST_TIMEOUT", defaults.request_timeout),
            system_prompt=_env_str("MIRROR_SYSTEM_PROMPT", defaults.system_prompt),
            max_chat_history=_env_int("MIRROR_MAX_CHAT_HISTORY", defaults.max_chat_history),
            context_turns=_env_int("MIRROR_CONTEXT_TURNS", defaults.context_turns),
            max_tokens=_env_int("MIRROR_MAX_TOKENS", defaults.max_tokens),
            temperature=_env_float("MIRROR_TEMPERATURE", defaults.temperature),
            wake_word=_env_str("MIRROR_WAKE_WORD", defaults.wake_word),
            wake_engine=_env_str("MIRROR_WAKE_ENGINE", defaults.wake_engine).lower(),
            wake_model_paths=_env_list("MIRROR_WAKE_MODEL_PATHS"),
            wake_threshold=_env_float("MIRROR_WAKE_THRESHOLD", defaults.wake_threshold),
            porcupine_access_key=_env_optional("MIRROR_PORCUPINE_ACCESS_KEY"),
            porcupine_keyword_paths=_env_list("MIRROR_PORCUPINE_KEYWORD_PATHS"),
            porcupine_sensitivity=_env_float("MIRROR_PORCUPINE_SENSITIVITY", defaults.porcupine_sensitivity),
            audio_device=_env_optional("MIRROR_AUDIO_DEVICE"),
            language=_env_str("MIRROR_LANGUAGE", defaults.language),
            stt_mode=_env_str("MIRROR_STT_MODE", defaults.stt_mode).lower(),
            stt_url=_env_str("MIRROR_STT_URL", defaults.stt_url),
            stt_api_key=_env_optional("MIRROR_STT_API_KEY"),
            whisper_host=_env_str("MIRROR_WHISPER_HOST", defaults.whisper_host),
            whisper_port=_env_int("MIRROR_WHISPER_PORT", defaults.whisper_port),
            whisper_model=_env_str("MIRROR_WHISPER_MODEL", defaults.whisper_model),
            whisper_device=_env_optional("MIRROR_WHISPER_DEVICE"),
            silence_duration=_env_float("MIRROR_SILENCE_DURATION", defaults.silence_duration),
            silence_threshold=_env_float("MIRROR_SILENCE_THRESHOLD", defaults.silence_threshold),
            tts_mode=_env_str("MIRROR_TTS_MODE", defaults.tts_mode).lower(),
            tts_url=_env_str("MIRROR_TTS_URL", defaults.tts_url).rstrip("/"),
            tts_api_key=_env_optional("MIRROR_TTS_API_KEY"),
            voice_name=_env_optional("MIRROR_VOICE_NAME"),
            voice_gender=_env_str("MIRROR_VOICE_GENDER", defaults.voice_gender).upper(),
            tts_sample_rate=_env_int("MIRROR_TTS_SAMPLE_RATE", defaults.tts_sample_rate),
            speaking_rate=_env_float("MIRROR_SPEAKING_RATE", defaults.speaking_rate),
            pitch=_env_float("MIRROR_PITCH", defaults.pitch),
            piper_host=_env_str("MIRROR_PIPER_HOST", defaults.piper_host),
            piper_port=_env_int("MIRROR_PIPER_PORT", defaults.piper_port),
            piper_speaker=_env_optional("MIRROR_PIPER_SPEAKER"),
            command_timeout=_env_float("MIRROR_COMMAND_TIMEOUT", defaults.command_timeout),
            response_timeout=_env_float("MIRROR_RESPONSE_TIMEOUT", defaults.response_timeout),
            speak_timeout=_env_float("MIRROR_SPEAK_TIMEOUT", defaults.speak_timeout),
            settle_delay=_env_float("MIRROR_SETTLE_DELAY", defaults.settle_delay),
            apology=os.environ.get("MIRROR_APOLOGY", defaults.apology),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Reject unknown backend names and out-of-range values."""
        _check_choice("MIRROR_AI_PROVIDER", self.ai_provider, {"openai", "chatgpt", "gemini", "http"})
        _check_choice("MIRROR_WAKE_ENGINE", self.wake_engine, {"openwakeword", "porcupine"})
        _check_choice("MIRROR_STT_MODE", self.stt_mode, {"stream", "wyoming", "whisper"})
        _check_choice("MIRROR_TTS_MODE", self.tts_mode, {"cloud", "wyoming", "console"})
        if self.max_chat_history < 1:
            raise ValueError("MIRROR_MAX_CHAT_HISTORY must be at least 1")
        for name, value in (
            ("MIRROR_WAKE_THRESHOLD", self.wake_threshold),
            ("MIRROR_PORCUPINE_SENSITIVITY", self.porcupine_sensitivity),
        ):
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0 and 1")
        if self.command_timeout <= 0:
            raise ValueError("MIRROR_COMMAND_TIMEOUT must be positive")


def _env_optional(name: str) -> Optional[str]:
    return os.environ.get(name) or None


def _env_str(name: str, default: str) -> str:
    return (os.environ.get(name) or default).strip()


def _env_list(name: str) -> List[str]:
    raw = os.environ.get(name) or ""
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc


def _check_choice(name: str, value: str, choices: set) -> None:
    if value not in choices:
        raise ValueError(f"{name} must be one of {', '.join(sorted(choices))} (got '{value}')")
