"""
Anthropic Claude provider implementation.
"""
import json
import time
from typing import Any, Dict, List, Optional, Union

from airouter.api.schemas import (
    ChatCompletionChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    MessageRole,
    Usage,
)
from airouter.core.exceptions import TerminalProviderError
from airouter.core.logger import get_logger
from airouter.providers.base import BaseProvider

logger = get_logger(__name__)

FINISH_REASONS = {
    "end_turn": "stop",
    "max_tokens": "length",
    "stop_sequence": "stop",
    "tool_use": "tool_calls",
}

# OpenAI string tool_choice values in Messages API form
TOOL_CHOICES = {
    "auto": {"type": "auto"},
    "required": {"type": "any"},
    "none": {"type": "none"},
}


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API adapter, exposed in the chat completion shape."""

    api_version = "2023-06-01"

    @property
    def provider_type(self) -> str:
        return "anthropic"

    @property
    def default_base_url(self) -> str:
        return "https://api.anthropic.com"

    @property
    def health_check_path(self) -> str:
        return "/v1/models"

    def prepare_headers(self) -> Dict[str, str]:
        headers = super().prepare_headers()
        headers["x-api-key"] = self.config.api_key
        headers["anthropic-version"] = self.api_version
        return headers

    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        payload = self._convert_to_anthropic_format(request)
        logger.info("Sending Anthropic messages request", model=request.model)
        data = await self.request("POST", f"{self.base_url}/v1/messages", payload)
        return self._convert_from_anthropic_format(data, request.model)

    def _convert_to_anthropic_format(self, request: ChatCompletionRequest) -> Dict[str, Any]:
        """
        Convert a chat completion request to the Messages API format.

        System messages are lifted into the top-level ``system`` field.
        Assistant ``tool_calls`` become ``tool_use`` blocks and ``tool``
        messages become ``tool_result`` blocks on a user turn; consecutive
        tool results share one turn.
        """
        system_parts = []
        messages: List[Dict[str, Any]] = []

        for msg in request.messages:
            if msg.role == MessageRole.SYSTEM:
                if msg.content:
                    system_parts.append(msg.content)
            elif msg.role in (MessageRole.TOOL, MessageRole.FUNCTION):
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id or msg.name or "",
                    "content": msg.content or "",
                }
                previous = messages[-1] if messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    messages.append({"role": "user", "content": [block]})
            elif msg.role == MessageRole.ASSISTANT and msg.tool_calls:
                blocks: List[Dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                blocks.extend(self._tool_use_block(call) for call in msg.tool_calls)
                messages.append({"role": "assistant", "content": blocks})
            else:
                messages.append({
                    "role": "user" if msg.role == MessageRole.USER else "assistant",
                    "content": msg.content or ""
                })

        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens or 4096,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.top_p is not None:
            payload["top_p"] = request.top_p
        if request.stop:
            payload["stop_sequences"] = (
                [request.stop] if isinstance(request.stop, str) else request.stop
            )
        if request.tools:
            payload["tools"] = [self._tool_definition(tool) for tool in request.tools]
        if request.tool_choice is not None:
            tool_choice = self._tool_choice(request.tool_choice)
            if tool_choice is not None:
                payload["tool_choice"] = tool_choice
        return payload

    @staticmethod
    def _tool_definition(tool: Dict[str, Any]) -> Dict[str, Any]:
        function = tool.get("function", tool)
        definition = {
            "name": function["name"],
            "input_schema": function.get("parameters") or {"type": "object", "properties": {}},
        }
        if function.get("description"):
            definition["description"] = function["description"]
        return definition

    @staticmethod
    def _tool_choice(choice: Union[str, Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if isinstance(choice, dict):
            name = (choice.get("function") or {}).get("name") or choice.get("name")
            return {"type": "tool", "name": name} if name else None
        return TOOL_CHOICES.get(choice)

    def _tool_use_block(self, call: Dict[str, Any]) -> Dict[str, Any]:
        function = call.get("function") or {}
        arguments = function.get("arguments") or "{}"
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except ValueError as e:
                raise TerminalProviderError(
                    f"Tool call arguments are not valid JSON: {e}",
                    provider_type=self.provider_type,
                    status_code=400
                )
        return {
            "type": "tool_use",
            "id": call.get("id", ""),
            "name": function.get("name", ""),
            "input": arguments,
        }

    def _convert_from_anthropic_format(
        self,
        response: Dict[str, Any],
        model: str
    ) -> ChatCompletionResponse:
        blocks = response.get("content") or []
        content = "".join(
            block.get("text", "")
            for block in blocks
            if block.get("type") == "text"
        )
        tool_calls = [
            {
                "id": block.get("id", ""),
                "type": "function",
                "function": {
                    "name": block.get("name", ""),
                    "arguments": json.dumps(block.get("input") or {}),
                },
            }
            for block in blocks
            if block.get("type") == "tool_use"
        ]
        usage = response.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)

        message = ChatMessage(
            role=MessageRole.ASSISTANT,
            content=content or (None if tool_calls else ""),
            tool_calls=tool_calls or None
        )
        return ChatCompletionResponse(
            id=response.get("id", "unknown"),
            created=int(time.time()),
            model=model,
            choices=[
                ChatCompletionChoice(
                    index=0,
                    message=message,
                    finish_reason=FINISH_REASONS.get(response.get("stop_reason"), "stop")
                )
            ],
            usage=Usage(
                prompt_tokens=input_tokens,
                completion_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens
            )
        )
