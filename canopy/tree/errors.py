"""Typed failures raised by the node tree core."""


class NodeTreeError(Exception):
    """Base class for every failure the core surfaces to its callers."""


class ValidationError(NodeTreeError):
    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class NodeNotFound(NodeTreeError):
    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"Node not found: {node_id}")


class BlockNotFound(NodeTreeError):
    def __init__(self, node_id: str, block_id: str) -> None:
        self.node_id = node_id
        self.block_id = block_id
        super().__init__(f"Block not found: {block_id} (node {node_id})")


class TreeStructureError(NodeTreeError):
    """A structural invariant is, or would become, violated.

    ``violation`` is one of: duplicate_id, orphan, inconsistent_children,
    cycle, depth_mismatch, block_order, duplicate_block_id, has_children.
    """

    def __init__(
        self, violation: str, node_id: str | None = None, detail: str | None = None,
    ) -> None:
        self.violation = violation
        self.node_id = node_id
        self.detail = detail
        message = f"Tree structure violation ({violation})"
        if node_id is not None:
            message += f" at node {node_id}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class BranchCreationError(NodeTreeError):
    def __init__(self, original_node_id: str, cause: Exception) -> None:
        self.original_node_id = original_node_id
        self.cause = cause
        super().__init__(f"Branch from {original_node_id} failed: {cause}")
