"""Export a NodeStore to its JSON document shape, and load one back."""

import logging
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from canopy.export.schemas import ExportDocument, ExportMetadata, NodeDisplay, NodeRecord
from canopy.models import Node
from canopy.tree.errors import ValidationError
from canopy.tree.store import NodeStore

logger = logging.getLogger(__name__)


def export_store(store: NodeStore) -> ExportDocument:
    """Snapshot every node, in creation order."""
    records = [
        NodeRecord(
            id=node.id,
            parent_id=node.parent_id,
            children=list(node.children),
            position=node.position,
            depth=node.depth,
            blocks=[b.model_copy() for b in node.blocks],
            display=NodeDisplay(
                name=node.name,
                collapsed=node.collapsed,
                width=node.width,
                height=node.height,
                branched_from=node.branched_from,
                created_at=node.created_at,
                updated_at=node.updated_at,
                version=node.version,
            ),
        )
        for node in store.get_all_nodes()
    ]
    return ExportDocument(
        nodes=records,
        metadata=ExportMetadata(exported_at=datetime.now(UTC), node_count=len(records)),
    )


def export_json(store: NodeStore) -> dict[str, Any]:
    return export_store(store).model_dump(mode="json")


def parse_document(data: ExportDocument | dict[str, Any]) -> ExportDocument:
    if isinstance(data, ExportDocument):
        return data
    try:
        return ExportDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("document", str(e)) from e


def import_document(store: NodeStore, data: ExportDocument | dict[str, Any]) -> None:
    """Replace the store's contents with an exported document.

    The candidate tree goes through the full integrity check first; on any
    error the store keeps its previous contents.
    """
    document = parse_document(data)
    now = datetime.now(UTC)
    nodes = [_record_to_node(record, now) for record in document.nodes]
    store.load_records(nodes)
    logger.info("Imported %d nodes", len(nodes))


def _record_to_node(record: NodeRecord, now: datetime) -> Node:
    display = record.display or NodeDisplay()
    return Node(
        id=record.id,
        parent_id=record.parent_id,
        children=list(record.children),
        depth=record.depth,
        position=record.position,
        blocks=list(record.blocks),
        name=display.name,
        collapsed=display.collapsed,
        width=display.width,
        height=display.height,
        branched_from=display.branched_from,
        created_at=display.created_at or now,
        updated_at=display.updated_at or now,
        version=display.version,
    )
