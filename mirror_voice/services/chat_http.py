"""HTTP backend for a generic assistant `/chat` endpoint."""

from __future__ import annotations

import ssl
from typing import Any, Dict, Iterable, Optional

from ..exceptions import BackendError
from ..interfaces import ChatBackend
from ..models import ChatRequest, ChatResponse, ToolCall
from .http import post_json


class HttpChatBackend(ChatBackend):
    """
    Minimal client for a self-hosted chat service.

    Request body::

        {"systemPrompt": "...", "history": [{"role", "content"}], "message": "...",
         "tools": [{"name", "description", "parameters"}],
         "toolCall": {"name", "args"}, "toolResult": {"name", "result"}}

    ``toolCall``/``toolResult`` are only present on the follow-up request.

    Usage:
        >>> backend = HttpChatBackend("http://localhost:8000", api_key=None)
        >>> backend.complete(ChatRequest(None, (), "Hello")).content
        'Hi there!'
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> None:
        self._endpoint = f"{base_url.rstrip('/')}/chat"
        self._api_key = api_key
        self._timeout = timeout
        self._ssl_context = ssl_context

    def complete(self, request: ChatRequest) -> ChatResponse:
        payload = build_payload(request)
        headers: Dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        body = post_json(
            self._endpoint,
            payload,
            headers=headers,
            timeout=self._timeout,
            ssl_context=self._ssl_context,
        )
        return parse_response(body)


def build_payload(request: ChatRequest) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "systemPrompt": request.system_prompt or "",
        "history": [turn.as_dict() for turn in request.history],
        "message": request.message,
    }
    if request.tools:
        payload["tools"] = [
            {"name": spec.name, "description": spec.description, "parameters": spec.parameters}
            for spec in request.tools
        ]
    if request.tool_call is not None and request.tool_result is not None:
        payload["toolCall"] = {"name": request.tool_call.name, "args": request.tool_call.args}
        payload["toolResult"] = {"name": request.tool_result.name, "result": request.tool_result.result}
    return payload


def parse_response(payload: Dict[str, Any]) -> ChatResponse:
    tool_call = _extract_tool_call(payload)
    if tool_call is not None:
        return ChatResponse(content=_find_text(payload), tool_call=tool_call, raw=payload)

    text = _find_text(payload)
    if text is None:
        raise BackendError("Chat response did not contain assistant content")
    return ChatResponse(content=text, tool_call=None, raw=payload)


def _extract_tool_call(payload: Dict[str, Any]) -> Optional[ToolCall]:
    call = payload.get("toolCall")
    if not isinstance(call, dict):
        return None
    name = call.get("name")
    if not isinstance(name, str) or not name:
        raise BackendError("Tool call in chat response is missing a name")
    args = call.get("args") or {}
    if not isinstance(args, dict):
        raise BackendError(f"Tool call '{name}' has non-object args")
    return ToolCall(name=name, args=args)


def _find_text(payload: Dict[str, Any]) -> Optional[str]:
    """
    Normalize multiple plausible response shapes to a string.

    Accepted shapes (first match wins):
        {"content": "text"}
        {"data": {"response": "text"}}
        {"reply": "text"}
        {"message": {"role": "assistant", "content": "text"}}
        {"choices": [{"message": {"role": "assistant", "content": "text"}}]}
    """

    if isinstance(payload.get("content"), str):
        return payload["content"]

    data = payload.get("data")
    if isinstance(data, dict):
        response = data.get("response")
        if isinstance(response, str):
            return response

    if isinstance(payload.get("reply"), str):
        return payload["reply"]

    message = payload.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content

    choices = payload.get("choices")
    if isinstance(choices, Iterable):
        for choice in choices:
            if isinstance(choice, dict):
                msg = choice.get("message")
                if isinstance(msg, dict):
                    content = msg.get("content")
                    if isinstance(content, str):
                        return content

    return None
