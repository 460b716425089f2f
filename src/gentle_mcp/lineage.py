"""
Lineage graph: the append-only provenance DAG of a project.

Every sequence revision ever created gets one node; every derivation gets one
edge from a source node to the derived node. Nodes and edges are never removed,
so history survives removal of a sequence from the working set.
"""

import time
from collections import OrderedDict
from enum import Enum
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, PrivateAttr

from gentle_mcp.errors import EngineError, ErrorCode


def now_unix_ms() -> int:
    return time.time_ns() // 1_000_000


class SequenceOrigin(str, Enum):
    """How a sequence entered the project."""
    ImportedGenomic = "ImportedGenomic"
    ImportedCdna = "ImportedCdna"
    ImportedSynthetic = "ImportedSynthetic"
    ImportedUnknown = "ImportedUnknown"
    Derived = "Derived"
    InSilicoSelection = "InSilicoSelection"
    Branch = "Branch"


class LineageNode(BaseModel):
    """One revision of one sequence."""
    node_id: str = Field(description="Unique node id, 'n-<counter>'")
    seq_id: str = Field(description="Sequence id this node materialized")
    created_by_op: Optional[str] = Field(default=None, description="Operation id that created the node")
    origin: SequenceOrigin = Field(default=SequenceOrigin.ImportedUnknown)
    created_at_unix_ms: int = Field(default=0, description="Creation time, non-decreasing within a graph")


class LineageEdge(BaseModel):
    """One derivation step from a source node to a derived node."""
    from_node_id: str
    to_node_id: str
    op_id: str
    run_id: str = "interactive"


class LineageGraph(BaseModel):
    """Nodes, edges and the sequence-to-latest-node index."""
    nodes: Dict[str, LineageNode] = Field(default_factory=dict)
    seq_to_node: Dict[str, str] = Field(default_factory=dict)
    edges: List[LineageEdge] = Field(default_factory=list)
    next_node_counter: int = 0

    _clock_floor: Optional[int] = PrivateAttr(default=None)

    def _next_timestamp(self) -> int:
        if self._clock_floor is None:
            self._clock_floor = max((n.created_at_unix_ms for n in self.nodes.values()), default=0)
        stamp = max(now_unix_ms(), self._clock_floor)
        self._clock_floor = stamp
        return stamp

    def add_node(
        self,
        seq_id: str,
        origin: SequenceOrigin,
        created_by_op: Optional[str] = None,
    ) -> str:
        """Create a new node for ``seq_id`` and make it the sequence's current node."""
        self.next_node_counter += 1
        node_id = f"n-{self.next_node_counter}"
        while node_id in self.nodes:
            self.next_node_counter += 1
            node_id = f"n-{self.next_node_counter}"
        self.nodes[node_id] = LineageNode(
            node_id=node_id,
            seq_id=seq_id,
            created_by_op=created_by_op,
            origin=origin,
            created_at_unix_ms=self._next_timestamp(),
        )
        self.seq_to_node[seq_id] = node_id
        return node_id

    def ensure_node(self, seq_id: str) -> str:
        """Return the current node of ``seq_id``, creating a root node if it has none."""
        node_id = self.seq_to_node.get(seq_id)
        if node_id is not None:
            return node_id
        return self.add_node(seq_id, SequenceOrigin.ImportedUnknown)

    def add_edges(
        self,
        parent_seq_ids: Iterable[str],
        created_seq_ids: Iterable[str],
        op_id: str,
        run_id: str,
    ) -> int:
        """Connect every parent's current node to every created sequence's node."""
        parents = list(OrderedDict.fromkeys(self.ensure_node(s) for s in parent_seq_ids))
        children = [self.ensure_node(s) for s in created_seq_ids]
        if not parents or not children:
            return 0
        for from_node_id in parents:
            for to_node_id in children:
                self.edges.append(LineageEdge(
                    from_node_id=from_node_id,
                    to_node_id=to_node_id,
                    op_id=op_id,
                    run_id=run_id,
                ))
        return len(parents) * len(children)

    def node_for(self, seq_id: str) -> Optional[LineageNode]:
        node_id = self.seq_to_node.get(seq_id)
        return self.nodes.get(node_id) if node_id else None

    def parents_of(self, node_id: str) -> List[str]:
        return list(OrderedDict.fromkeys(e.from_node_id for e in self.edges if e.to_node_id == node_id))

    def op_groups(self) -> Dict[str, List[str]]:
        """Node ids grouped by the operation that created them, in node-id order."""
        groups: Dict[str, List[str]] = {}
        for node in sorted(self.nodes.values(), key=_node_sort_key):
            if node.created_by_op:
                groups.setdefault(node.created_by_op, []).append(node.node_id)
        return groups

    def pooled_groups(self) -> Dict[str, List[str]]:
        """Operations that fanned out into more than one node."""
        return {op_id: ids for op_id, ids in self.op_groups().items() if len(ids) > 1}

    def topological_order(self) -> List[str]:
        """
        Node ids ordered so every edge points forward.

        Raises:
            EngineError: if the edge set contains a cycle or references an unknown node.
        """
        indegree = {node_id: 0 for node_id in self.nodes}
        outgoing: Dict[str, List[str]] = {node_id: [] for node_id in self.nodes}
        for edge in self.edges:
            if edge.from_node_id not in indegree or edge.to_node_id not in indegree:
                raise EngineError(
                    ErrorCode.Internal,
                    f"Lineage edge {edge.from_node_id} -> {edge.to_node_id} references an unknown node",
                )
            outgoing[edge.from_node_id].append(edge.to_node_id)
            indegree[edge.to_node_id] += 1

        ready = sorted((n for n, d in indegree.items() if d == 0), key=lambda n: _node_sort_key(self.nodes[n]))
        order: List[str] = []
        while ready:
            node_id = ready.pop(0)
            order.append(node_id)
            for child in outgoing[node_id]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    ready.append(child)
        if len(order) != len(self.nodes):
            raise EngineError(ErrorCode.Internal, "Lineage graph contains a cycle")
        return order


def _node_sort_key(node: LineageNode):
    # 'n-10' sorts after 'n-9'
    suffix = node.node_id.rsplit("-", 1)[-1]
    return (node.created_at_unix_ms, int(suffix) if suffix.isdigit() else 0, node.node_id)
