"""OpenAI-compatible chat completions backend with function calling."""

from __future__ import annotations

import json
import logging
import ssl
import uuid
from typing import Any, Dict, List, Optional

from ..exceptions import BackendError
from ..interfaces import ChatBackend
from ..models import ChatRequest, ChatResponse, ToolCall
from .http import post_json

logger = logging.getLogger(__name__)


class OpenAIChatBackend(ChatBackend):
    """
    Backend for any server exposing ``/v1/chat/completions``.

    Tools are advertised with the ``tools`` field; a tool result is fed back as
    an assistant message carrying ``tool_calls`` followed by a ``tool`` message.

    Usage:
        >>> backend = OpenAIChatBackend(api_key="sk-...", model="gpt-3.5-turbo")
        >>> backend.complete(ChatRequest("Be brief.", (), "Hello")).content
        'Hi!'
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.openai.com",
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 150,
        temperature: float = 0.7,
        timeout: float = 30.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        """
        Args:
            api_key: Bearer token for the API.
            base_url: Server root (``/v1/chat/completions`` is appended).
            model: Model name sent with every request.
            max_tokens: Completion length cap.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
            ssl_context: Optional SSL context for HTTPS.
        """
        self._endpoint = f"{base_url.rstrip('/')}/v1/chat/completions"
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._ssl_context = ssl_context

    def complete(self, request: ChatRequest) -> ChatResponse:
        body = post_json(
            self._endpoint,
            self.build_payload(request),
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self._timeout,
            ssl_context=self._ssl_context,
            service="OpenAI",
        )
        return parse_response(body)

    def build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self._model,
            "messages": build_messages(request),
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        if request.tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {
                        "name": spec.name,
                        "description": spec.description,
                        "parameters": spec.parameters,
                    },
                }
                for spec in request.tools
            ]
        return payload


def build_messages(request: ChatRequest) -> List[Dict[str, Any]]:
    messages: List[Dict[str, Any]] = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.extend(turn.as_dict() for turn in request.history)
    messages.append({"role": "user", "content": request.message})

    if request.tool_call is not None and request.tool_result is not None:
        call_id = request.tool_call.call_id or f"call_{uuid.uuid4().hex[:12]}"
        messages.append(
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": call_id,
                        "type": "function",
                        "function": {
                            "name": request.tool_call.name,
                            "arguments": json.dumps(request.tool_call.args),
                        },
                    }
                ],
            }
        )
        messages.append(
            {
                "role": "tool",
                "tool_call_id": call_id,
                "content": json.dumps(request.tool_result.result),
            }
        )
    return messages


def parse_response(payload: Dict[str, Any]) -> ChatResponse:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise BackendError("Invalid OpenAI response")

    message = choices[0].get("message")
    if not isinstance(message, dict):
        raise BackendError("Invalid OpenAI response")

    content = message.get("content")
    if not isinstance(content, str):
        content = None

    tool_calls = message.get("tool_calls")
    if isinstance(tool_calls, list) and tool_calls:
        if len(tool_calls) > 1:
            logger.info("OpenAI requested %d tools; only the first is run", len(tool_calls))
        return ChatResponse(content=content, tool_call=_parse_tool_call(tool_calls[0]), raw=payload)

    return ChatResponse(content=content, tool_call=None, raw=payload)


def _parse_tool_call(raw: Any) -> ToolCall:
    function = raw.get("function") if isinstance(raw, dict) else None
    if not isinstance(function, dict) or not isinstance(function.get("name"), str):
        raise BackendError("Malformed tool call in OpenAI response")

    arguments = function.get("arguments") or "{}"
    try:
        args = json.loads(arguments) if isinstance(arguments, str) else arguments
    except json.JSONDecodeError as exc:
        raise BackendError(f"Tool call '{function['name']}' has invalid JSON arguments") from exc
    if not isinstance(args, dict):
        raise BackendError(f"Tool call '{function['name']}' has non-object arguments")

    return ToolCall(name=function["name"], args=args, call_id=raw.get("id"))
