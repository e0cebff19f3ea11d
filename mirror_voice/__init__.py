"""
Mirror voice assistant package.

A hotword-gated voice assistant pipeline: openWakeWord/Porcupine keyword
spotting on the microphone, streaming transcription once woken, a chat backend
with tool calling, and spoken replies. The default entrypoint is
``python -m mirror_voice``.
"""

__all__ = [
    "config",
    "engine",
    "history",
    "interfaces",
    "models",
    "pipeline",
    "tools",
]

__version__ = "0.1.0"
