"""Workspace service: owns live workspaces and persists them after each change."""

import asyncio
import logging
import weakref
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from canopy.config import Settings
from canopy.db.connection import Database
from canopy.db.repository import WorkspaceRepository
from canopy.export.schemas import ExportDocument
from canopy.models import ConversationThread, Node
from canopy.tree.errors import BlockNotFound
from canopy.tree.store import make_block
from canopy.tree.validation import (
    NODE_MAX_SIZE,
    NODE_MIN_SIZE,
    check_dimension,
    sanitize_name,
)
from canopy.workspaces.schemas import (
    AddBlockRequest,
    BranchResponse,
    CreateBranchRequest,
    CreateNodeRequest,
    CreateWorkspaceRequest,
    EditBlockRequest,
    EditResponse,
    HistoryResponse,
    ImportWorkspaceRequest,
    LayoutResponse,
    NodeHistoryResponse,
    PatchBlockRequest,
    PatchNodeRequest,
    WorkspaceDetail,
    WorkspaceSummary,
)
from canopy.workspaces.workspace import Workspace

logger = logging.getLogger(__name__)


class WorkspaceService:
    """Async front for the synchronous tree core.

    Mutations on one workspace are serialized by a per-workspace lock; the
    snapshot is written only after the mutation has committed.
    """

    def __init__(self, db: Database, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()
        self._repo = WorkspaceRepository(
            db, layout=self._settings.layout, limits=self._settings.limits
        )
        self._workspaces: OrderedDict[str, Workspace] = OrderedDict()
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    # -- Workspaces --

    async def create_workspace(self, request: CreateWorkspaceRequest) -> WorkspaceDetail:
        workspace = self._new_workspace(str(uuid4()), request.title)
        if request.seed_root or request.root_prompt:
            workspace.store.create_node(
                None,
                [make_block("prompt", request.root_prompt, 0), make_block("response", "", 1)],
            )
        await self._repo.save(workspace)
        self._remember(workspace)
        logger.info("Created workspace %s", workspace.id)
        return self._detail(workspace)

    async def list_workspaces(self) -> list[WorkspaceSummary]:
        rows = await self._repo.list_rows()
        return [WorkspaceSummary.model_validate(r) for r in rows]

    async def get_workspace(self, workspace_id: str) -> WorkspaceDetail:
        return self._detail(await self._load(workspace_id))

    async def import_workspace(self, request: ImportWorkspaceRequest) -> WorkspaceDetail:
        workspace = Workspace.from_export(
            str(uuid4()),
            request.document,
            title=request.title,
            layout=self._settings.layout,
            limits=self._settings.limits,
        )
        await self._repo.save(workspace)
        self._remember(workspace)
        logger.info("Imported workspace %s (%d nodes)", workspace.id, len(workspace.store))
        return self._detail(workspace)

    async def export_workspace(self, workspace_id: str) -> ExportDocument:
        return (await self._load(workspace_id)).export()

    # -- Nodes and blocks --

    async def create_node(self, workspace_id: str, request: CreateNodeRequest) -> Node:
        async with self._mutating(workspace_id) as workspace:
            blocks = [
                make_block(
                    b.type, b.content, i,
                    minimized=b.minimized, width=b.width, height=b.height,
                )
                for i, b in enumerate(request.blocks)
            ]
            node = workspace.store.create_node(
                request.parent_id,
                blocks,
                name=request.name,
                insert_after=request.insert_after,
            )
            return workspace.store.get_node(node.id)

    async def delete_node(self, workspace_id: str, node_id: str) -> None:
        async with self._mutating(workspace_id) as workspace:
            workspace.store.delete_node(node_id)

    async def patch_node(
        self, workspace_id: str, node_id: str, request: PatchNodeRequest
    ) -> Node:
        fields = request.model_fields_set
        async with self._mutating(workspace_id) as workspace:
            store = workspace.store
            node = store.get_node(node_id)
            # Check every field before applying any, so a bad request changes nothing.
            if request.name is not None:
                sanitize_name(request.name, store.max_name_length)
            check_dimension("width", request.width, NODE_MIN_SIZE, NODE_MAX_SIZE)
            check_dimension("height", request.height, NODE_MIN_SIZE, NODE_MAX_SIZE)

            if "width" in fields or "height" in fields:
                store.resize_node(
                    node_id,
                    request.width if "width" in fields else node.width,
                    request.height if "height" in fields else node.height,
                )
            if request.collapsed is not None:
                store.set_collapsed(node_id, request.collapsed)
            if request.name is not None:
                store.rename_node(node_id, request.name)
            return store.get_node(node_id)

    async def add_block(
        self, workspace_id: str, node_id: str, request: AddBlockRequest
    ) -> Node:
        async with self._mutating(workspace_id) as workspace:
            workspace.store.add_block(
                node_id, request.type, request.content, index=request.index
            )
            return workspace.store.get_node(node_id)

    async def remove_block(self, workspace_id: str, node_id: str, block_id: str) -> Node:
        async with self._mutating(workspace_id) as workspace:
            return workspace.store.remove_block(node_id, block_id)

    async def patch_block(
        self, workspace_id: str, node_id: str, block_id: str, request: PatchBlockRequest
    ) -> Node:
        fields = request.model_fields_set
        async with self._mutating(workspace_id) as workspace:
            store = workspace.store
            if store.get_node(node_id).find_block(block_id) is None:
                raise BlockNotFound(node_id, block_id)
            # Presentation first: it can be rejected, content updates cannot.
            if fields & {"minimized", "width", "height"}:
                store.update_block_presentation(
                    node_id,
                    block_id,
                    minimized=request.minimized,
                    width=request.width,
                    height=request.height,
                )
            if request.content is not None:
                store.update_block_content(node_id, block_id, request.content)
            return store.get_node(node_id)

    # -- Branching --

    async def edit_block(
        self, workspace_id: str, node_id: str, block_id: str, request: EditBlockRequest
    ) -> EditResponse:
        async with self._mutating(workspace_id) as workspace:
            outcome = workspace.branching.edit_block(
                node_id, block_id, request.content, request.edit_source
            )
            return EditResponse(
                branched=outcome.branched,
                node=workspace.store.get_node(outcome.node_id),
                branch_metadata=outcome.branch.branch_metadata if outcome.branch else None,
            )

    async def create_branch(
        self, workspace_id: str, node_id: str, request: CreateBranchRequest
    ) -> BranchResponse:
        async with self._mutating(workspace_id) as workspace:
            result = workspace.branching.create_branch_from_edit(
                node_id, request.block_id, request.new_content, request.edit_source
            )
            if not result.success:
                raise result.error
            return BranchResponse(
                original_node_id=result.original_node_id,
                node=workspace.store.get_node(result.new_node_id),
                branch_metadata=result.branch_metadata,
            )

    # -- Read views --

    async def get_thread(self, workspace_id: str, node_id: str) -> ConversationThread:
        workspace = await self._load(workspace_id)
        return workspace.threads.build_thread(node_id)

    async def get_layout(self, workspace_id: str) -> LayoutResponse:
        workspace = await self._load(workspace_id)
        width, height = workspace.layout_engine.canvas_bounds(workspace.store)
        return LayoutResponse(
            positions=workspace.layout_engine.compute_layout(workspace.store),
            canvas_width=width,
            canvas_height=height,
        )

    async def get_history(self, workspace_id: str) -> HistoryResponse:
        workspace = await self._load(workspace_id)
        return HistoryResponse(
            entries=workspace.history.all_entries(),
            summary=workspace.history.summary(),
        )

    async def get_node_history(self, workspace_id: str, node_id: str) -> NodeHistoryResponse:
        workspace = await self._load(workspace_id)
        workspace.store.get_node(node_id)
        return NodeHistoryResponse(
            node_id=node_id,
            chain=workspace.branching.get_branch_history(node_id),
            branches=workspace.history.get_branches(node_id),
        )

    # -- Generation support --

    async def build_context(
        self, workspace_id: str, parent_id: str, prompt: str
    ) -> str:
        """Conversation text for a new prompt asked beneath ``parent_id``."""
        workspace = await self._load(workspace_id)
        return workspace.threads.build_conversation_context(parent_id, pending_prompt=prompt)

    async def create_generated_node(
        self, workspace_id: str, parent_id: str, prompt: str, response: str
    ) -> Node:
        """Store a finished prompt/response exchange as a new child."""
        async with self._mutating(workspace_id) as workspace:
            node = workspace.store.create_node(
                parent_id,
                [make_block("prompt", prompt, 0), make_block("response", response, 1)],
            )
            return workspace.store.get_node(node.id)

    # -- Internal --

    def _new_workspace(self, workspace_id: str, title: str) -> Workspace:
        return Workspace(
            workspace_id,
            title,
            layout=self._settings.layout,
            limits=self._settings.limits,
        )

    async def _load(self, workspace_id: str) -> Workspace:
        workspace = self._workspaces.get(workspace_id)
        if workspace is None:
            loaded = await self._repo.load(workspace_id)
            if loaded is None:
                raise WorkspaceNotFoundError(workspace_id)
            # Another task may have cached it while the load was in flight.
            workspace = self._workspaces.setdefault(workspace_id, loaded)
        self._remember(workspace)
        return workspace

    def _remember(self, workspace: Workspace) -> None:
        """Mark ``workspace`` most recently used and evict idle ones over the cap.

        A workspace whose lock is alive has a mutation running or queued and
        stays cached, so nobody can reload a snapshot older than its state.
        """
        self._workspaces[workspace.id] = workspace
        self._workspaces.move_to_end(workspace.id)
        excess = len(self._workspaces) - self._settings.workspace_cache_size
        if excess <= 0:
            return
        idle = [wid for wid in self._workspaces if wid not in self._locks]
        for wid in idle[:excess]:
            del self._workspaces[wid]
            logger.debug("Evicted workspace %s from cache", wid)

    @asynccontextmanager
    async def _mutating(self, workspace_id: str) -> AsyncIterator[Workspace]:
        # Weakly held: the entry lives exactly as long as some task holds or
        # waits on the lock.
        lock = self._locks.get(workspace_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[workspace_id] = lock
        async with lock:
            workspace = await self._load(workspace_id)
            yield workspace
            await self._repo.save(workspace)

    def _detail(self, workspace: Workspace) -> WorkspaceDetail:
        width, height = workspace.layout_engine.canvas_bounds(workspace.store)
        return WorkspaceDetail(
            workspace_id=workspace.id,
            title=workspace.title,
            nodes=workspace.store.get_all_nodes(),
            canvas_width=width,
            canvas_height=height,
            created_at=workspace.created_at,
            updated_at=workspace.updated_at,
        )


class WorkspaceNotFoundError(Exception):
    def __init__(self, workspace_id: str) -> None:
        self.workspace_id = workspace_id
        super().__init__(f"Workspace not found: {workspace_id}")
