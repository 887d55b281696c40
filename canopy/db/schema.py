"""Database schema DDL. All tables use CREATE IF NOT EXISTS for idempotency."""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS workspaces (
    workspace_id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    snapshot TEXT NOT NULL,
    node_count INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS branch_history (
    branch_id TEXT PRIMARY KEY,
    workspace_id TEXT NOT NULL,
    original_node_id TEXT NOT NULL,
    branch_node_id TEXT NOT NULL,
    block_id TEXT NOT NULL,
    branch_block_id TEXT NOT NULL,
    edit_source TEXT NOT NULL,
    reason TEXT NOT NULL,
    previous_content TEXT NOT NULL,
    new_content TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (workspace_id) REFERENCES workspaces(workspace_id)
);

CREATE INDEX IF NOT EXISTS idx_branch_history_workspace ON branch_history(workspace_id);
CREATE INDEX IF NOT EXISTS idx_branch_history_original ON branch_history(original_node_id);
"""
