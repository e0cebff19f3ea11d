"""Google Gemini `generateContent` backend with function calling."""

from __future__ import annotations

import logging
import ssl
import urllib.parse
from typing import Any, Dict, List, Optional

from ..exceptions import BackendError
from ..interfaces import ChatBackend
from ..models import ChatRequest, ChatResponse, ToolCall
from .http import post_json

logger = logging.getLogger(__name__)


class GeminiChatBackend(ChatBackend):
    """
    Backend for the Gemini REST API.

    History turns map to ``contents`` with roles ``user``/``model``; tools are
    sent as ``functionDeclarations`` and a tool result goes back as a
    ``functionResponse`` part.

    Args:
        api_key: Gemini API key (sent as the ``key`` query parameter).
        model: Model name, e.g. ``gemini-2.0-flash``.
        base_url: API root.
        max_tokens: ``maxOutputTokens`` for generation.
        temperature: Sampling temperature.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com",
        max_tokens: int = 150,
        temperature: float = 0.7,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        query = urllib.parse.urlencode({"key": api_key})
        self._endpoint = f"{base_url.rstrip('/')}/v1beta/models/{model}:generateContent?{query}"
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._ssl_context = ssl_context

    def complete(self, request: ChatRequest) -> ChatResponse:
        body = post_json(
            self._endpoint,
            self.build_payload(request),
            timeout=self._timeout,
            ssl_context=self._ssl_context,
            service="Gemini",
        )
        return parse_response(body)

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": build_contents(request),
            "generationConfig": {
                "maxOutputTokens": self._max_tokens,
                "temperature": self._temperature,
            },
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        if request.tools:
            payload["tools"] = [
                {
                    "functionDeclarations": [
                        {"name": spec.name, "description": spec.description, "parameters": spec.parameters}
                        for spec in request.tools
                    ]
                }
            ]
        return payload


def build_contents(request: ChatRequest) -> List[Dict[str, Any]]:
    contents: List[Dict[str, Any]] = [
        {"role": "model" if turn.role == "assistant" else "user", "parts": [{"text": turn.content}]}
        for turn in request.history
    ]
    contents.append({"role": "user", "parts": [{"text": request.message}]})

    if request.tool_call is not None and request.tool_result is not None:
        result = request.tool_result.result
        # functionResponse.response must be an object
        response = result if isinstance(result, dict) else {"result": result}
        contents.append(
            {
                "role": "model",
                "parts": [{"functionCall": {"name": request.tool_call.name, "args": request.tool_call.args}}],
            }
        )
        contents.append(
            {
                "role": "user",
                "parts": [{"functionResponse": {"name": request.tool_result.name, "response": response}}],
            }
        )
    return contents


def parse_response(payload: Dict[str, Any]) -> ChatResponse:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        feedback = payload.get("promptFeedback")
        raise BackendError(f"Invalid Gemini response{f': {feedback}' if feedback else ''}")

    content = candidates[0].get("content") or {}
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        raise BackendError("Invalid Gemini response")

    texts: List[str] = []
    tool_call: Optional[ToolCall] = None
    for part in parts:
        if not isinstance(part, dict):
            continue
        if isinstance(part.get("text"), str):
            texts.append(part["text"])
        call = part.get("functionCall")
        if tool_call is None and isinstance(call, dict) and isinstance(call.get("name"), str):
            args = call.get("args") or {}
            if not isinstance(args, dict):
                raise BackendError(f"Tool call '{call['name']}' has non-object args")
            tool_call = ToolCall(name=call["name"], args=args)

    text = "".join(texts) or None
    return ChatResponse(content=text, tool_call=tool_call, raw=payload)
