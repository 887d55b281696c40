"""FastAPI routes for workspaces, nodes, blocks, branching and generation."""

import json as json_module
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import StreamingResponse

from canopy.export.schemas import ExportDocument
from canopy.generation.service import GenerationService, ModelNotConfiguredError
from canopy.models import ConversationThread, Node
from canopy.providers.base import CompletionProvider
from canopy.providers.registry import ProviderNotFoundError
from canopy.tree.errors import (
    BlockNotFound,
    BranchCreationError,
    NodeNotFound,
    NodeTreeError,
    TreeStructureError,
    ValidationError,
)
from canopy.workspaces.schemas import (
    AddBlockRequest,
    BranchResponse,
    CreateBranchRequest,
    CreateNodeRequest,
    CreateWorkspaceRequest,
    EditBlockRequest,
    EditResponse,
    GenerateRequest,
    HistoryResponse,
    ImportWorkspaceRequest,
    LayoutResponse,
    NodeHistoryResponse,
    PatchBlockRequest,
    PatchNodeRequest,
    WorkspaceDetail,
    WorkspaceSummary,
)
from canopy.workspaces.service import WorkspaceNotFoundError, WorkspaceService

router = APIRouter(prefix="/api/workspaces", tags=["workspaces"])

DOMAIN_ERRORS = (WorkspaceNotFoundError, NodeTreeError)


def get_workspace_service() -> WorkspaceService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("WorkspaceService not initialized")


def get_generation_service() -> GenerationService:
    """Dependency placeholder, replaced at app startup."""
    raise RuntimeError("GenerationService not initialized")


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (WorkspaceNotFoundError, NodeNotFound, BlockNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, TreeStructureError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, BranchCreationError):
        return HTTPException(status_code=500, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


# -- Workspaces --


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_workspace(
    request: CreateWorkspaceRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceDetail:
    try:
        return await service.create_workspace(request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("")
async def list_workspaces(
    service: WorkspaceService = Depends(get_workspace_service),
) -> list[WorkspaceSummary]:
    return await service.list_workspaces()


@router.post("/import", status_code=status.HTTP_201_CREATED)
async def import_workspace(
    request: ImportWorkspaceRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceDetail:
    try:
        return await service.import_workspace(request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}")
async def get_workspace(
    workspace_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> WorkspaceDetail:
    try:
        return await service.get_workspace(workspace_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}/export")
async def export_workspace(
    workspace_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> ExportDocument:
    try:
        return await service.export_workspace(workspace_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}/layout")
async def get_layout(
    workspace_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> LayoutResponse:
    try:
        return await service.get_layout(workspace_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}/history")
async def get_history(
    workspace_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> HistoryResponse:
    try:
        return await service.get_history(workspace_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


# -- Nodes --


@router.post("/{workspace_id}/nodes", status_code=status.HTTP_201_CREATED)
async def create_node(
    workspace_id: str,
    request: CreateNodeRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Node:
    try:
        return await service.create_node(workspace_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.delete("/{workspace_id}/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_node(
    workspace_id: str,
    node_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Response:
    try:
        await service.delete_node(workspace_id, node_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{workspace_id}/nodes/{node_id}")
async def patch_node(
    workspace_id: str,
    node_id: str,
    request: PatchNodeRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Node:
    try:
        return await service.patch_node(workspace_id, node_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}/nodes/{node_id}/thread")
async def get_thread(
    workspace_id: str,
    node_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> ConversationThread:
    try:
        return await service.get_thread(workspace_id, node_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.get("/{workspace_id}/nodes/{node_id}/history")
async def get_node_history(
    workspace_id: str,
    node_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> NodeHistoryResponse:
    try:
        return await service.get_node_history(workspace_id, node_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


# -- Blocks --


@router.post(
    "/{workspace_id}/nodes/{node_id}/blocks", status_code=status.HTTP_201_CREATED
)
async def add_block(
    workspace_id: str,
    node_id: str,
    request: AddBlockRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Node:
    try:
        return await service.add_block(workspace_id, node_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.delete("/{workspace_id}/nodes/{node_id}/blocks/{block_id}")
async def remove_block(
    workspace_id: str,
    node_id: str,
    block_id: str,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Node:
    try:
        return await service.remove_block(workspace_id, node_id, block_id)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.patch("/{workspace_id}/nodes/{node_id}/blocks/{block_id}")
async def patch_block(
    workspace_id: str,
    node_id: str,
    block_id: str,
    request: PatchBlockRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> Node:
    try:
        return await service.patch_block(workspace_id, node_id, block_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


# -- Branching --


@router.post("/{workspace_id}/nodes/{node_id}/blocks/{block_id}/edit")
async def edit_block(
    workspace_id: str,
    node_id: str,
    block_id: str,
    request: EditBlockRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> EditResponse:
    try:
        return await service.edit_block(workspace_id, node_id, block_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


@router.post(
    "/{workspace_id}/nodes/{node_id}/branches", status_code=status.HTTP_201_CREATED
)
async def create_branch(
    workspace_id: str,
    node_id: str,
    request: CreateBranchRequest,
    service: WorkspaceService = Depends(get_workspace_service),
) -> BranchResponse:
    try:
        return await service.create_branch(workspace_id, node_id, request)
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


# -- Generation --


@router.post(
    "/{workspace_id}/nodes/{node_id}/generate",
    status_code=status.HTTP_201_CREATED,
    response_model=None,
)
async def generate(
    workspace_id: str,
    node_id: str,
    request: GenerateRequest,
    gen_service: GenerationService = Depends(get_generation_service),
) -> Node | StreamingResponse:
    try:
        provider = gen_service.resolve_provider(request.provider)
    except ProviderNotFoundError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.stream:
        return StreamingResponse(
            _stream_sse(gen_service, workspace_id, node_id, provider, request),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    try:
        return await gen_service.generate_child(
            workspace_id,
            node_id,
            provider,
            request.prompt,
            model=request.model,
            system_prompt=request.system_prompt,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        )
    except ModelNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DOMAIN_ERRORS as e:
        raise _http_error(e)


async def _stream_sse(
    gen_service: GenerationService,
    workspace_id: str,
    node_id: str,
    provider: CompletionProvider,
    request: GenerateRequest,
) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted lines."""
    try:
        async for chunk in gen_service.generate_child_stream(
            workspace_id,
            node_id,
            provider,
            request.prompt,
            model=request.model,
            system_prompt=request.system_prompt,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
        ):
            if chunk.is_final and chunk.result:
                data = {
                    "type": "message_stop",
                    "content": chunk.result.content,
                    "finish_reason": chunk.result.finish_reason,
                    "usage": chunk.result.usage,
                    "latency_ms": chunk.result.latency_ms,
                    "node_id": (
                        chunk.result.raw_response.get("node_id")
                        if chunk.result.raw_response
                        else None
                    ),
                }
                yield f"event: message_stop\ndata: {json_module.dumps(data)}\n\n"
            elif chunk.text:
                data = {"type": "text_delta", "text": chunk.text}
                yield f"event: text_delta\ndata: {json_module.dumps(data)}\n\n"
    except Exception as e:
        error = {"error": str(e)}
        yield f"event: error\ndata: {json_module.dumps(error)}\n\n"
