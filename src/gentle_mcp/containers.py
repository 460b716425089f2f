"""Container and arrangement registry."""

from collections import OrderedDict
from enum import Enum
from typing import Collection, Dict, List, Optional

from pydantic import BaseModel, Field

from gentle_mcp.errors import EngineError, ErrorCode
from gentle_mcp.lineage import LineageGraph, now_unix_ms


class ContainerKind(str, Enum):
    Singleton = "Singleton"
    Pool = "Pool"
    Selection = "Selection"


class ArrangementMode(str, Enum):
    Serial = "Serial"
    Pooled = "Pooled"


class Container(BaseModel):
    """A named, ordered set of sequence ids (a tube, a well, a pool)."""
    container_id: str
    kind: ContainerKind = ContainerKind.Singleton
    name: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    created_by_op: Optional[str] = None
    created_at_unix_ms: int = 0


class Arrangement(BaseModel):
    """An ordered group of containers plus rendering hints, e.g. gel lanes."""
    arrangement_id: str
    name: Optional[str] = None
    mode: ArrangementMode = ArrangementMode.Serial
    lane_container_ids: List[str] = Field(default_factory=list)
    ladders: List[str] = Field(default_factory=list)
    created_by_op: Optional[str] = None
    created_at_unix_ms: int = 0


class ContainerState(BaseModel):
    containers: Dict[str, Container] = Field(default_factory=dict)
    arrangements: Dict[str, Arrangement] = Field(default_factory=dict)
    seq_to_latest_container: Dict[str, str] = Field(default_factory=dict)
    next_container_counter: int = 0
    next_arrangement_counter: int = 0

    def _next_container_id(self) -> str:
        while True:
            self.next_container_counter += 1
            container_id = f"container-{self.next_container_counter}"
            if container_id not in self.containers:
                return container_id

    def _next_arrangement_id(self) -> str:
        while True:
            self.next_arrangement_counter += 1
            arrangement_id = f"arrangement-{self.next_arrangement_counter}"
            if arrangement_id not in self.arrangements:
                return arrangement_id

    def add_container(
        self,
        members: List[str],
        kind: ContainerKind,
        name: Optional[str] = None,
        created_by_op: Optional[str] = None,
    ) -> Optional[str]:
        """Register a container; returns ``None`` for an empty member list."""
        members = list(OrderedDict.fromkeys(members))
        if not members:
            return None
        container_id = self._next_container_id()
        self.containers[container_id] = Container(
            container_id=container_id,
            kind=kind,
            name=name,
            members=members,
            created_by_op=created_by_op,
            created_at_unix_ms=now_unix_ms(),
        )
        for seq_id in members:
            self.seq_to_latest_container[seq_id] = container_id
        return container_id

    def container_members(self, container_id: str, known_seq_ids: Collection[str]) -> List[str]:
        container = self.containers.get(container_id)
        if container is None:
            raise EngineError(ErrorCode.NotFound, f"Container '{container_id}' not found")
        if not container.members:
            raise EngineError(ErrorCode.InvalidInput, f"Container '{container_id}' has no members")
        for seq_id in container.members:
            if seq_id not in known_seq_ids:
                raise EngineError(
                    ErrorCode.NotFound,
                    f"Container '{container_id}' references unknown sequence '{seq_id}'",
                )
        return list(container.members)

    def flatten_members(
        self,
        container_ids: List[str],
        known_seq_ids: Collection[str],
        limit: int,
    ) -> List[str]:
        """Concatenate the members of several containers, in container order."""
        if not container_ids:
            raise EngineError(ErrorCode.InvalidInput, "At least one container id is required")
        members: List[str] = []
        for container_id in container_ids:
            members.extend(self.container_members(container_id, known_seq_ids))
            if len(members) > limit:
                raise EngineError(
                    ErrorCode.InvalidInput,
                    f"Container merge input count exceeds max_fragments_per_container={limit}",
                )
        return members

    def add_arrangement(
        self,
        lane_container_ids: List[str],
        mode: ArrangementMode,
        created_by_op: str,
        name: Optional[str] = None,
        ladders: Optional[List[str]] = None,
        arrangement_id: Optional[str] = None,
    ) -> str:
        if not lane_container_ids:
            raise EngineError(ErrorCode.InvalidInput, "An arrangement requires at least one container id")
        for container_id in lane_container_ids:
            if container_id not in self.containers:
                raise EngineError(ErrorCode.NotFound, f"Container '{container_id}' not found")
        if arrangement_id is not None:
            arrangement_id = arrangement_id.strip()
            if not arrangement_id:
                raise EngineError(ErrorCode.InvalidInput, "arrangement_id must not be empty")
            if arrangement_id in self.arrangements:
                raise EngineError(ErrorCode.InvalidInput, f"Arrangement '{arrangement_id}' already exists")
        else:
            arrangement_id = self._next_arrangement_id()
        self.arrangements[arrangement_id] = Arrangement(
            arrangement_id=arrangement_id,
            name=name,
            mode=mode,
            lane_container_ids=list(lane_container_ids),
            ladders=[ladder.strip() for ladder in (ladders or []) if ladder.strip()],
            created_by_op=created_by_op,
            created_at_unix_ms=now_unix_ms(),
        )
        return arrangement_id

    def arrangement_source_nodes(self, arrangement_id: str, lineage: LineageGraph) -> List[str]:
        """
        Lineage nodes an arrangement is built from.

        Resolved through lane containers, their members and ``seq_to_node``;
        deduplicated, first occurrence wins. Containers or sequences that no
        longer resolve are skipped.
        """
        arrangement = self.arrangements.get(arrangement_id)
        if arrangement is None:
            raise EngineError(ErrorCode.NotFound, f"Arrangement '{arrangement_id}' not found")
        source_node_ids: List[str] = []
        seen = set()
        for container_id in arrangement.lane_container_ids:
            container = self.containers.get(container_id)
            if container is None:
                continue
            for seq_id in container.members:
                node_id = lineage.seq_to_node.get(seq_id)
                if node_id is not None and node_id not in seen:
                    seen.add(node_id)
                    source_node_ids.append(node_id)
        return source_node_ids
