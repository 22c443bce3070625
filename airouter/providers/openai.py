"""
OpenAI-compatible provider implementation.

Also serves Together, Hugging Face router endpoints and custom
OpenAI-compatible gateways, which share the same wire format.
"""
from typing import Any, Dict

from airouter.api.schemas import (
    ChatCompletionChoice,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    EmbeddingData,
    EmbeddingRequest,
    EmbeddingResponse,
    MessageRole,
    Usage,
)
from airouter.core.logger import get_logger
from airouter.providers.base import BaseProvider

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """OpenAI API provider implementation."""

    @property
    def provider_type(self) -> str:
        return "openai"

    @property
    def default_base_url(self) -> str:
        return "https://api.openai.com/v1"

    def prepare_headers(self) -> Dict[str, str]:
        headers = super().prepare_headers()
        headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """
        Send chat completion request to an OpenAI-compatible endpoint.

        Args:
            request: Chat completion request

        Returns:
            Chat completion response
        """
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [msg.model_dump(exclude_none=True) for msg in request.messages],
            "stream": False
        }
        payload.update(request.model_dump(
            exclude={"model", "messages"},
            exclude_none=True
        ))

        logger.info(
            "Sending chat completion request",
            provider_type=self.provider_type,
            model=request.model
        )
        data = await self.request("POST", f"{self.base_url}/chat/completions", payload)

        return ChatCompletionResponse(
            id=data.get("id", "unknown"),
            object=data.get("object", "chat.completion"),
            created=data.get("created", 0),
            model=request.model,
            choices=[
                ChatCompletionChoice(
                    index=choice.get("index", 0),
                    message=ChatMessage(
                        role=MessageRole(choice["message"]["role"]),
                        content=choice["message"].get("content"),
                        tool_calls=choice["message"].get("tool_calls"),
                    ),
                    finish_reason=choice.get("finish_reason")
                )
                for choice in data.get("choices", [])
            ],
            usage=Usage(**data["usage"]) if data.get("usage") else None
        )

    async def embeddings(self, request: EmbeddingRequest) -> EmbeddingResponse:
        payload = request.model_dump(exclude_none=True)
        data = await self.request("POST", f"{self.base_url}/embeddings", payload)

        usage = data.get("usage") or {}
        return EmbeddingResponse(
            data=[
                EmbeddingData(embedding=item["embedding"], index=item.get("index", i))
                for i, item in enumerate(data.get("data", []))
            ],
            model=data.get("model", request.model),
            usage=Usage(
                prompt_tokens=usage.get("prompt_tokens", 0),
                total_tokens=usage.get("total_tokens", 0)
            ) if usage else None
        )
