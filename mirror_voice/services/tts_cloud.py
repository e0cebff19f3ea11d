"""Cloud text-to-speech adapter (Google `text:synthesize` request shape)."""

from __future__ import annotations

import base64
import binascii
import logging
import ssl
import urllib.parse
from typing import Any, Dict, Optional

from ..exceptions import SynthesisError
from ..interfaces import Speaker
from .http import post_json
from .playback import SoundDevicePlayer

logger = logging.getLogger(__name__)


class CloudSpeaker(Speaker):
    """
    Text-to-speech using a cloud ``text:synthesize`` endpoint.

    Args:
        api_key: API key sent as the ``key`` query parameter.
        base_url: Service root (``/v1/text:synthesize`` is appended).
        language_code: Voice language, e.g. "en-US".
        voice_name: Optional voice name, e.g. "en-US-Standard-F".
        gender: ``ssmlGender`` value ("FEMALE", "MALE", "NEUTRAL").
        sample_rate: Requested output sample rate (Hz).
        speaking_rate: Speaking rate multiplier.
        pitch: Pitch adjustment in semitones.
        timeout: HTTP timeout in seconds.
        player: Playback backend; defaults to sounddevice.

    Expected API format:
        POST /v1/text:synthesize
        Body: {"input": {"text"}, "voice": {"languageCode", "name", "ssmlGender"},
               "audioConfig": {"audioEncoding": "LINEAR16", "sampleRateHertz", ...}}

        Response: {"audioContent": "<base64 WAV/PCM>"}
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = "https://texttospeech.googleapis.com",
        language_code: str = "en-US",
        voice_name: Optional[str] = None,
        gender: str = "FEMALE",
        sample_rate: int = 24000,
        speaking_rate: float = 1.0,
        pitch: float = 0.0,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
        player: Optional[SoundDevicePlayer] = None,
    ) -> None:
        endpoint = f"{base_url.rstrip('/')}/v1/text:synthesize"
        if api_key:
            endpoint = f"{endpoint}?{urllib.parse.urlencode({'key': api_key})}"
        self._endpoint = endpoint
        self._language_code = language_code
        self._voice_name = voice_name
        self._gender = gender
        self._sample_rate = sample_rate
        self._speaking_rate = speaking_rate
        self._pitch = pitch
        self._timeout = timeout
        self._ssl_context = ssl_context
        self._player = player or SoundDevicePlayer()

    def build_request(self, text: str) -> Dict[str, Any]:
        voice: Dict[str, Any] = {"languageCode": self._language_code, "ssmlGender": self._gender}
        if self._voice_name:
            voice["name"] = self._voice_name
        return {
            "input": {"text": text},
            "voice": voice,
            "audioConfig": {
                "audioEncoding": "LINEAR16",
                "sampleRateHertz": self._sample_rate,
                "speakingRate": self._speaking_rate,
                "pitch": self._pitch,
            },
        }

    def synthesize(self, text: str) -> bytes:
        """Return the synthesized audio (WAV or raw PCM16) for ``text``."""
        body = post_json(
            self._endpoint,
            self.build_request(text),
            timeout=self._timeout,
            ssl_context=self._ssl_context,
            error_cls=SynthesisError,
            service="Synthesis",
        )
        content = body.get("audioContent")
        if not isinstance(content, str) or not content:
            raise SynthesisError("Synthesis response did not contain audioContent")
        try:
            return base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise SynthesisError("Synthesis audioContent was not valid base64") from exc

    def speak(self, text: str) -> None:
        if not text.strip():
            return
        audio = self.synthesize(text)
        logger.debug("Synthesized %d bytes of audio", len(audio))
        self._player.play(audio, self._sample_rate)

    def stop(self) -> None:
        self._player.stop()
