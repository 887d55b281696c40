"""Wire shape of an exported tree."""

from datetime import datetime

from pydantic import BaseModel, Field

from canopy.models import Block, Position

FORMAT_VERSION = "1.0"


class NodeDisplay(BaseModel):
    name: str = ""
    collapsed: bool = False
    width: float | None = None
    height: float | None = None
    branched_from: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 1


class NodeRecord(BaseModel):
    id: str
    parent_id: str | None = None
    children: list[str] = Field(default_factory=list)
    position: Position = Field(default_factory=Position)
    depth: int = 0
    blocks: list[Block] = Field(default_factory=list)
    display: NodeDisplay | None = None


class ExportMetadata(BaseModel):
    exported_at: datetime
    node_count: int
    format_version: str = FORMAT_VERSION


class ExportDocument(BaseModel):
    nodes: list[NodeRecord]
    metadata: ExportMetadata
