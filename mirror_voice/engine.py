"""Response engine: one chat round-trip with at most one tool hop."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Sequence

from .exceptions import BackendError
from .interfaces import ChatBackend, Responder
from .models import AssistantReply, ChatRequest, ChatResponse, ConversationTurn
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_FALLBACK_REPLY = "Sorry, I couldn't finish that request."


class ResponseEngine(Responder):
    """
    Produces the assistant reply for a finalized transcript.

    The request carries the system prompt, the last ``context_turns`` history
    turns and the user message. If the backend asks for a tool instead of
    answering, the tool runs through the registry and its result (or error) is
    sent back once to get the final reply. A second tool request is not
    followed; its text is used if any, otherwise ``fallback_reply``.

    Usage:
        engine = ResponseEngine(
            OpenAIChatBackend(api_key="sk-..."),
            system_prompt="You are a helpful mirror.",
            tools=default_registry(),
        )
        reply = engine.respond("what time is it", history.turns())
    """

    def __init__(
        self,
        backend: ChatBackend,
        *,
        system_prompt: Optional[str] = None,
        tools: Optional[ToolRegistry] = None,
        context_turns: int = 6,
        fallback_reply: str = DEFAULT_FALLBACK_REPLY,
    ) -> None:
        self._backend = backend
        self._system_prompt = system_prompt
        self._tools = tools if tools is not None else ToolRegistry()
        self._context_turns = max(0, context_turns)
        self._fallback_reply = fallback_reply

    @property
    def tools(self) -> ToolRegistry:
        return self._tools

    def respond(self, user_message: str, history: Sequence[ConversationTurn]) -> AssistantReply:
        window = tuple(history)[-self._context_turns :] if self._context_turns else ()
        request = ChatRequest(
            system_prompt=self._system_prompt,
            history=window,
            message=user_message,
            tools=tuple(self._tools.specs()),
        )

        response = self._backend.complete(request)
        if response.tool_call is None:
            return AssistantReply(content=_require_content(response))

        call = response.tool_call
        result = self._tools.invoke(call)
        if result.is_error:
            logger.info("Tool %s returned an error result: %s", call.name, result.result)

        follow_up = replace(request, tools=(), tool_call=call, tool_result=result)
        final = self._backend.complete(follow_up)
        if final.tool_call is not None:
            logger.warning(
                "Backend requested a second tool (%s); chained tool calls are not followed",
                final.tool_call.name,
            )
            content = (final.content or "").strip()
            return AssistantReply(content=content or self._fallback_reply, tool_result=result)

        return AssistantReply(content=_require_content(final), tool_result=result)


def _require_content(response: ChatResponse) -> str:
    content = (response.content or "").strip()
    if not content:
        raise BackendError("Chat response did not contain assistant content")
    return content
