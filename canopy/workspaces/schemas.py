"""Request and response schemas for workspace endpoints."""

from datetime import datetime

from pydantic import BaseModel, Field

from canopy.export.schemas import ExportDocument
from canopy.models import (
    BlockType,
    BranchMetadata,
    EditSource,
    HistorySummary,
    Node,
    Position,
)

# -- Requests --


class CreateWorkspaceRequest(BaseModel):
    title: str = ""
    seed_root: bool = False
    root_prompt: str = ""


class BlockInput(BaseModel):
    type: BlockType
    content: str = ""
    minimized: bool = False
    width: float | None = None
    height: float | None = None


class CreateNodeRequest(BaseModel):
    parent_id: str | None = None
    blocks: list[BlockInput] = Field(default_factory=list)
    name: str = ""
    insert_after: str | None = None


class PatchNodeRequest(BaseModel):
    """Only fields present in the request body are changed. An explicit null
    width or height clears that override."""

    name: str | None = None
    collapsed: bool | None = None
    width: float | None = None
    height: float | None = None


class AddBlockRequest(BaseModel):
    type: BlockType
    content: str = ""
    index: int | None = None


class PatchBlockRequest(BaseModel):
    content: str | None = None
    minimized: bool | None = None
    width: float | None = None
    height: float | None = None


class EditBlockRequest(BaseModel):
    content: str
    edit_source: EditSource = "chat_interface_edit"


class CreateBranchRequest(BaseModel):
    block_id: str
    new_content: str
    edit_source: EditSource = "inline_edit"


class ImportWorkspaceRequest(BaseModel):
    title: str = ""
    document: ExportDocument


class GenerateRequest(BaseModel):
    """Body for POST /api/workspaces/{wid}/nodes/{nid}/generate."""

    prompt: str
    provider: str | None = None
    model: str | None = None
    system_prompt: str | None = None
    max_tokens: int | None = Field(default=None, ge=1)
    temperature: float | None = Field(default=None, ge=0, le=2)
    stream: bool = False


# -- Responses --


class WorkspaceSummary(BaseModel):
    workspace_id: str
    title: str
    node_count: int
    created_at: datetime
    updated_at: datetime


class WorkspaceDetail(BaseModel):
    workspace_id: str
    title: str
    nodes: list[Node]
    canvas_width: float
    canvas_height: float
    created_at: datetime
    updated_at: datetime


class EditResponse(BaseModel):
    branched: bool
    node: Node
    branch_metadata: BranchMetadata | None = None


class BranchResponse(BaseModel):
    original_node_id: str
    node: Node
    branch_metadata: BranchMetadata


class LayoutResponse(BaseModel):
    positions: dict[str, Position]
    canvas_width: float
    canvas_height: float


class HistoryResponse(BaseModel):
    entries: list[BranchMetadata]
    summary: HistorySummary


class NodeHistoryResponse(BaseModel):
    node_id: str
    chain: list[BranchMetadata]
    branches: list[str]
