"""Deterministic JSON export of the lineage graph and its arrangements."""

import json
from typing import Any, Dict, List

from gentle_mcp.state import ProjectState

LINEAGE_EXPORT_SCHEMA = "gentle.lineage.v1"


def lineage_rows(state: ProjectState) -> List[Dict[str, Any]]:
    op_counts: Dict[str, int] = {}
    for node in state.lineage.nodes.values():
        if node.created_by_op:
            op_counts[node.created_by_op] = op_counts.get(node.created_by_op, 0) + 1

    rows = []
    for node in state.lineage.nodes.values():
        record = state.sequences.get(node.seq_id)
        rows.append({
            "node_id": node.node_id,
            "seq_id": node.seq_id,
            "display_name": (record.name if record and record.name else node.seq_id),
            "length": record.length if record else 0,
            "live": record is not None,
            "origin": node.origin.value,
            "created_by_op": node.created_by_op,
            "created_at_unix_ms": node.created_at_unix_ms,
            "pool_size": op_counts.get(node.created_by_op, 0) if node.created_by_op else 0,
        })
    rows.sort(key=lambda r: (r["created_at_unix_ms"], r["node_id"]))
    return rows


def arrangement_rows(state: ProjectState) -> List[Dict[str, Any]]:
    registry = state.container_state
    rows = []
    for arrangement_id, arrangement in registry.arrangements.items():
        rows.append({
            "node_id": f"arr:{arrangement_id}",
            "arrangement_id": arrangement_id,
            "display_name": arrangement.name or arrangement_id,
            "created_by_op": arrangement.created_by_op or "CreateArrangementSerial",
            "created_at_unix_ms": arrangement.created_at_unix_ms,
            "mode": arrangement.mode.value,
            "lane_container_ids": list(arrangement.lane_container_ids),
            "ladders": list(arrangement.ladders),
            "source_node_ids": registry.arrangement_source_nodes(arrangement_id, state.lineage),
        })
    rows.sort(key=lambda r: (r["created_at_unix_ms"], r["arrangement_id"]))
    return rows


def export_lineage(state: ProjectState) -> Dict[str, Any]:
    """
    Build the lineage document for ``state``.

    Node rows are ordered by creation time then node id; ``pooled_ops`` lists
    every operation that produced more than one node.

    Raises:
        EngineError: code ``Internal`` if the lineage edges form a cycle.
    """
    order = state.lineage.topological_order()
    return {
        "schema": LINEAGE_EXPORT_SCHEMA,
        "node_count": len(state.lineage.nodes),
        "edge_count": len(state.lineage.edges),
        "nodes": lineage_rows(state),
        "edges": [edge.model_dump(mode="json") for edge in state.lineage.edges],
        "topological_order": order,
        "pooled_ops": state.lineage.pooled_groups(),
        "arrangements": arrangement_rows(state),
    }


def export_lineage_json(state: ProjectState) -> str:
    return json.dumps(export_lineage(state), indent=2)
