"""Tests for the container and arrangement registry."""

import pytest

from gentle_mcp.containers import ArrangementMode, ContainerKind, ContainerState
from gentle_mcp.errors import EngineError, ErrorCode
from gentle_mcp.lineage import LineageGraph, SequenceOrigin


@pytest.fixture
def registry():
    """An empty container registry."""
    return ContainerState()


class TestContainers:
    """Container registry bookkeeping."""

    def test_ids_and_dedup(self, registry):
        """Ids are sequential and members are deduplicated."""
        cid = registry.add_container(["a", "b", "a"], ContainerKind.Pool, "tube")
        assert cid == "container-1"
        assert registry.containers[cid].members == ["a", "b"]
        assert registry.seq_to_latest_container == {"a": cid, "b": cid}

    def test_empty_container_is_not_created(self, registry):
        """An empty member list creates nothing."""
        assert registry.add_container([], ContainerKind.Pool) is None
        assert registry.containers == {}
        assert registry.next_container_counter == 0

    def test_latest_container_moves(self, registry):
        """The newest container becomes a sequence's latest."""
        registry.add_container(["a"], ContainerKind.Singleton)
        second = registry.add_container(["a", "b"], ContainerKind.Pool)
        assert registry.seq_to_latest_container["a"] == second

    def test_members_of_unknown_container(self, registry):
        """Unknown container ids are NotFound."""
        with pytest.raises(EngineError) as exc:
            registry.container_members("container-5", set())
        assert exc.value.code == ErrorCode.NotFound

    def test_members_must_be_live(self, registry):
        """Members must still exist in the project."""
        cid = registry.add_container(["a", "gone"], ContainerKind.Pool)
        with pytest.raises(EngineError, match="unknown sequence 'gone'"):
            registry.container_members(cid, {"a"})

    def test_flatten_respects_limit(self, registry):
        """Flattening stops at the fragment limit."""
        first = registry.add_container(["a", "b"], ContainerKind.Pool)
        second = registry.add_container(["c", "d"], ContainerKind.Pool)
        known = {"a", "b", "c", "d"}
        assert registry.flatten_members([first, second], known, 10) == ["a", "b", "c", "d"]
        with pytest.raises(EngineError, match="max_fragments_per_container=3"):
            registry.flatten_members([first, second], known, 3)

    def test_flatten_requires_ids(self, registry):
        """Flattening needs at least one container."""
        with pytest.raises(EngineError, match="At least one container id"):
            registry.flatten_members([], set(), 10)


class TestArrangements:
    """Arrangement registry bookkeeping."""

    def test_generated_and_explicit_ids(self, registry):
        """Ids are generated unless one is given."""
        cid = registry.add_container(["a"], ContainerKind.Singleton)
        assert registry.add_arrangement([cid], ArrangementMode.Serial, "op-1") == "arrangement-1"
        assert registry.add_arrangement([cid], ArrangementMode.Serial, "op-2", arrangement_id="gel-A") == "gel-A"

    def test_duplicate_explicit_id(self, registry):
        """An explicit id cannot be reused."""
        cid = registry.add_container(["a"], ContainerKind.Singleton)
        registry.add_arrangement([cid], ArrangementMode.Serial, "op-1", arrangement_id="gel")
        with pytest.raises(EngineError, match="already exists"):
            registry.add_arrangement([cid], ArrangementMode.Serial, "op-2", arrangement_id="gel")

    def test_requires_lanes(self, registry):
        """An arrangement needs at least one lane."""
        with pytest.raises(EngineError):
            registry.add_arrangement([], ArrangementMode.Serial, "op-1")

    def test_source_nodes_deduplicated_in_lane_order(self, registry):
        """Source nodes keep lane order without repeats."""
        lineage = LineageGraph()
        for seq_id in ("a", "b", "c"):
            lineage.add_node(seq_id, SequenceOrigin.ImportedSynthetic)
        first = registry.add_container(["b", "a"], ContainerKind.Pool)
        second = registry.add_container(["a", "c"], ContainerKind.Pool)
        arrangement_id = registry.add_arrangement([first, second], ArrangementMode.Serial, "op-9")
        nodes = registry.arrangement_source_nodes(arrangement_id, lineage)
        assert nodes == [lineage.seq_to_node["b"], lineage.seq_to_node["a"], lineage.seq_to_node["c"]]

    def test_source_nodes_unknown_arrangement(self, registry):
        """Unknown arrangement ids are an error."""
        with pytest.raises(EngineError):
            registry.arrangement_source_nodes("arrangement-3", LineageGraph())
