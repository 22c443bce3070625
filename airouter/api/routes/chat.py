"""
Routed chat and embedding endpoints.
"""
from fastapi import APIRouter, Depends

from airouter.api.dependencies import get_routing_service, verify_admin_key
from airouter.api.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    EmbeddingRequest,
    EmbeddingResponse,
)
from airouter.services.router import RoutingService

router = APIRouter(
    prefix="/organizations/{organization_id}",
    tags=["routing"],
    dependencies=[Depends(verify_admin_key)]
)


@router.post("/chat/completions", response_model=ChatCompletionResponse)
async def chat_completions(
    organization_id: str,
    request: ChatCompletionRequest,
    routing: RoutingService = Depends(get_routing_service)
):
    """Chat completion routed with failover across the organization's providers."""
    return await routing.chat(organization_id, request)


@router.post("/embeddings", response_model=EmbeddingResponse)
async def embeddings(
    organization_id: str,
    request: EmbeddingRequest,
    routing: RoutingService = Depends(get_routing_service)
):
    return await routing.embeddings(organization_id, request)
