import os
import logging
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI

from config.settings import OpenAIConfig, settings
from errors import UpstreamUnavailable
from models import Message, ModelReply, ModelToolCall


def to_wire(messages: List[Message]) -> List[Dict[str, Any]]:
    """Convert history to chat-completions messages.

    A tool result is only sent after the assistant message that requested it, and an
    assistant tool request only together with its result; either half left over after
    window eviction is dropped.
    """
    answered = {m.tool_call_id for m in messages if m.role == "tool" and m.tool_call_id}
    requested = set()
    wire: List[Dict[str, Any]] = []
    for m in messages:
        if m.role == "assistant" and m.tool_call_id:
            if m.tool_call_id not in answered:
                continue
            requested.add(m.tool_call_id)
            wire.append({
                "role": "assistant",
                "content": m.content or None,
                "tool_calls": [{
                    "id": m.tool_call_id,
                    "type": "function",
                    "function": {"name": m.tool_name, "arguments": m.tool_arguments or "{}"},
                }],
            })
        elif m.role == "tool":
            if m.tool_call_id not in requested:
                continue
            wire.append({"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content})
        else:
            wire.append({"role": m.role, "content": m.content})
    return wire


class OpenAIChatClient:
    """Single-attempt chat-completions client with function tools."""

    def __init__(self, cfg: Optional[OpenAIConfig] = None, client: Optional[OpenAI] = None):
        self.cfg = cfg or settings.openai
        self.api_key = self.cfg.api_key or os.getenv("OPENAI_API_KEY", "")
        self.logger = logging.getLogger("app")
        self.client = client
        if self.client is None and self.api_key:
            self.client = OpenAI(
                api_key=self.api_key,
                base_url=self.cfg.base_url,
                timeout=self.cfg.request_timeout_seconds,
                max_retries=0,
            )

    @property
    def is_configured(self) -> bool:
        return self.client is not None

    @property
    def model(self) -> str:
        return self.cfg.chat_model

    def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> ModelReply:
        if not self.is_configured:
            raise UpstreamUnavailable("LLM API key not configured")
        kwargs: Dict[str, Any] = {
            "model": self.cfg.chat_model,
            "messages": to_wire(messages),
            "temperature": self.cfg.temperature,
            "max_tokens": self.cfg.max_tokens,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice or "auto"
        try:
            resp = self.client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            self.logger.error(f"LLM request failed: {e}", extra={"extra_data": {"model": self.cfg.chat_model}})
            raise UpstreamUnavailable("Error communicating with the AI service") from e

        if not resp.choices:
            raise UpstreamUnavailable("Empty completion from the AI service")
        message = resp.choices[0].message
        calls = [
            ModelToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "")
            for tc in (message.tool_calls or [])
            if getattr(tc, "function", None) is not None
        ]
        self.logger.debug(
            "LLM reply received",
            extra={"extra_data": {"tool_calls": [c.name for c in calls], "chars": len(message.content or "")}},
        )
        return ModelReply(content=message.content, tool_calls=calls)
