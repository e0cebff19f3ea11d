"""CLI harness for the mirror voice assistant."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Union

from .config import AppConfig
from .engine import ResponseEngine
from .exceptions import DeviceError
from .history import ConversationHistory
from .interfaces import ChatBackend, KeywordDetector, Speaker, Transcriber
from .notify import LoggingNotifier
from .pipeline import SessionController
from .services.audio_source import SoundDeviceAudioSource
from .services.chat_gemini import GeminiChatBackend
from .services.chat_http import HttpChatBackend
from .services.chat_openai import OpenAIChatBackend
from .services.tts import ConsoleSpeaker
from .services.tts_cloud import CloudSpeaker
from .services.wake_openwakeword import OpenWakeWordDetector
from .services.wake_porcupine import PorcupineDetector
from .tools import default_registry

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_backend(config: AppConfig) -> ChatBackend:
    if config.ai_provider in {"openai", "chatgpt"}:
        if not config.openai_api_key:
            raise RuntimeError("MIRROR_OPENAI_API_KEY must be set when MIRROR_AI_PROVIDER=openai.")
        return OpenAIChatBackend(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            model=config.openai_model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.request_timeout,
        )
    if config.ai_provider == "gemini":
        if not config.gemini_api_key:
            raise RuntimeError("MIRROR_GEMINI_API_KEY must be set when MIRROR_AI_PROVIDER=gemini.")
        return GeminiChatBackend(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.request_timeout,
        )
    return HttpChatBackend(config.chat_url, api_key=config.chat_api_key, timeout=config.request_timeout)


def build_detector(config: AppConfig) -> KeywordDetector:
    if config.wake_engine == "porcupine":
        if not config.porcupine_access_key:
            raise RuntimeError("MIRROR_PORCUPINE_ACCESS_KEY must be set when MIRROR_WAKE_ENGINE=porcupine.")
        return PorcupineDetector(
            access_key=config.porcupine_access_key,
            keyword_paths=config.porcupine_keyword_paths,
            keywords=None if config.porcupine_keyword_paths else [config.wake_word.lower()],
            sensitivity=config.porcupine_sensitivity,
        )
    return OpenWakeWordDetector(model_paths=config.wake_model_paths, threshold=config.wake_threshold)


def build_transcriber(config: AppConfig) -> Transcriber:
    # Imported lazily so unused protocol libraries are not loaded
    if config.stt_mode == "wyoming":
        from .services.stt_wyoming import WyomingTranscriber

        return WyomingTranscriber(
            host=config.whisper_host,
            port=config.whisper_port,
            language=config.language,
            silence_threshold=config.silence_threshold,
            silence_duration=config.silence_duration,
            max_seconds=config.command_timeout,
        )
    if config.stt_mode == "whisper":
        from .services.stt_whisper import WhisperTranscriber

        return WhisperTranscriber(
            model_size=config.whisper_model,
            device=config.whisper_device,
            language=config.language,
            silence_threshold=config.silence_threshold,
            silence_duration=config.silence_duration,
            max_seconds=config.command_timeout,
        )

    from .services.stt_stream import StreamingSocketTranscriber

    return StreamingSocketTranscriber(
        url=config.stt_url,
        api_key=config.stt_api_key,
        language=config.language,
        timeout=config.command_timeout,
    )


def build_speaker(config: AppConfig) -> Speaker:
    if config.tts_mode == "wyoming":
        from .services.tts_wyoming import WyomingSpeaker

        return WyomingSpeaker(
            host=config.piper_host,
            port=config.piper_port,
            timeout=config.request_timeout,
            speaker=config.piper_speaker,
        )
    if config.tts_mode == "console":
        return ConsoleSpeaker()
    return CloudSpeaker(
        api_key=config.tts_api_key,
        base_url=config.tts_url,
        language_code=config.language,
        voice_name=config.voice_name,
        gender=config.voice_gender,
        sample_rate=config.tts_sample_rate,
        speaking_rate=config.speaking_rate,
        pitch=config.pitch,
        timeout=config.request_timeout,
    )


def build_assistant(config: AppConfig) -> SessionController:
    """Wire up the session controller with the configured services."""
    engine = ResponseEngine(
        build_backend(config),
        system_prompt=config.system_prompt,
        tools=default_registry(),
        context_turns=config.context_turns,
    )
    return SessionController(
        audio=SoundDeviceAudioSource(device=_parse_device(config.audio_device)),
        detector=build_detector(config),
        transcriber=build_transcriber(config),
        responder=engine,
        speaker=build_speaker(config),
        history=ConversationHistory(max_exchanges=config.max_chat_history),
        notifier=LoggingNotifier(),
        command_timeout=config.command_timeout,
        response_timeout=config.response_timeout,
        speak_timeout=config.speak_timeout,
        settle_delay=config.settle_delay,
        apology=config.apology or None,
    )


def _parse_device(raw: Optional[str]) -> Optional[Union[int, str]]:
    if raw is None:
        return None
    return int(raw) if raw.isdigit() else raw


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the hotword-gated mirror voice assistant.")
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    parser.add_argument(
        "--provider",
        choices=["openai", "chatgpt", "gemini", "http"],
        help="Override MIRROR_AI_PROVIDER.",
    )
    parser.add_argument(
        "--tts-mode",
        choices=["cloud", "wyoming", "console"],
        help="Override MIRROR_TTS_MODE.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    _configure_logging(args.verbose)
    config = AppConfig.from_env()
    if args.provider:
        config.ai_provider = args.provider
    if args.tts_mode:
        config.tts_mode = args.tts_mode
    assistant = build_assistant(config)
    try:
        assistant.run_forever()
    except DeviceError as exc:
        logger.critical("Audio device unusable: %s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
