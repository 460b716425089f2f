"""Tests for the lineage graph and its JSON export."""

import pytest

from gentle_mcp.engine import GentleEngine
from gentle_mcp.errors import EngineError
from gentle_mcp.lineage import LineageEdge, LineageGraph, SequenceOrigin
from gentle_mcp.lineage_export import LINEAGE_EXPORT_SCHEMA, export_lineage
from gentle_mcp.operations import CreateArrangementSerial, Digest, ExportLineage, LoadSequence, Reverse


@pytest.fixture
def digested(engine, sample_sequences):
    """Engine with one sequence digested into three EcoRI fragments."""
    engine.apply(LoadSequence(sequence=sample_sequences["two_ecori_sites"], as_id="demo"))
    engine.apply(Digest(input="demo", enzymes=["EcoRI"]))
    return engine


def add_cycle(graph: LineageGraph) -> None:
    graph.add_node("a", SequenceOrigin.ImportedSynthetic)
    graph.add_node("b", SequenceOrigin.Derived)
    graph.edges.append(LineageEdge(from_node_id="n-1", to_node_id="n-2", op_id="op-1"))
    graph.edges.append(LineageEdge(from_node_id="n-2", to_node_id="n-1", op_id="op-2"))


class TestLineageGraph:
    """Node and edge bookkeeping."""

    def test_node_ids_are_sequential(self):
        """Node ids count up as n-1, n-2, ..."""
        graph = LineageGraph()
        assert graph.add_node("a", SequenceOrigin.ImportedSynthetic) == "n-1"
        assert graph.add_node("b", SequenceOrigin.Derived, "op-1") == "n-2"
        assert graph.seq_to_node == {"a": "n-1", "b": "n-2"}

    def test_new_revision_moves_current_node(self):
        """A second node for the same sequence becomes its current node."""
        graph = LineageGraph()
        graph.add_node("a", SequenceOrigin.ImportedSynthetic)
        graph.add_node("a", SequenceOrigin.Derived, "op-2")
        assert graph.seq_to_node["a"] == "n-2"
        assert len(graph.nodes) == 2

    def test_timestamps_never_decrease(self):
        """Creation times are monotonic in node order."""
        graph = LineageGraph()
        for i in range(20):
            graph.add_node(f"s{i}", SequenceOrigin.Derived)
        stamps = [graph.nodes[f"n-{i}"].created_at_unix_ms for i in range(1, 21)]
        assert stamps == sorted(stamps)

    def test_ensure_node_creates_root(self):
        """A sequence without a node gets an ImportedUnknown root, once."""
        graph = LineageGraph()
        node_id = graph.ensure_node("orphan")
        assert graph.nodes[node_id].origin == SequenceOrigin.ImportedUnknown
        assert graph.ensure_node("orphan") == node_id

    def test_add_edges_cross_product(self):
        """Every distinct parent is linked to every child."""
        graph = LineageGraph()
        graph.add_node("a", SequenceOrigin.ImportedSynthetic)
        graph.add_node("b", SequenceOrigin.ImportedSynthetic)
        graph.add_node("c", SequenceOrigin.Derived, "op-3")
        graph.add_node("d", SequenceOrigin.Derived, "op-3")
        count = graph.add_edges(["a", "b", "a"], ["c", "d"], "op-3", "run")
        assert count == 4
        assert {(e.from_node_id, e.to_node_id) for e in graph.edges} == {
            ("n-1", "n-3"), ("n-1", "n-4"), ("n-2", "n-3"), ("n-2", "n-4"),
        }

    def test_add_edges_without_parents(self):
        """Root sequences get no edges."""
        graph = LineageGraph()
        graph.add_node("a", SequenceOrigin.ImportedSynthetic, "op-1")
        assert graph.add_edges([], ["a"], "op-1", "interactive") == 0
        assert graph.edges == []

    def test_topological_order(self, digested):
        """Every edge points forward in topological order."""
        graph = digested.state.lineage
        order = graph.topological_order()
        position = {node_id: i for i, node_id in enumerate(order)}
        for edge in graph.edges:
            assert position[edge.from_node_id] < position[edge.to_node_id]

    def test_cycle_is_reported(self):
        """A cyclic edge set is an internal error."""
        graph = LineageGraph()
        add_cycle(graph)
        with pytest.raises(EngineError, match="cycle"):
            graph.topological_order()

    def test_fragments_have_the_input_as_parent(self, digested):
        """Each digest fragment descends from the digested sequence."""
        lineage = digested.state.lineage
        root = lineage.seq_to_node["demo"]
        for i in (1, 2, 3):
            assert lineage.parents_of(lineage.seq_to_node[f"demo_digest_{i}"]) == [root]


class TestPooling:
    """Operations that fan out into several sequences."""

    def test_three_fragments_are_one_pool(self, digested):
        """A three-fragment digest is one pooled group."""
        lineage = digested.state.lineage
        pools = lineage.pooled_groups()
        assert list(pools) == ["op-2"]
        assert len(pools["op-2"]) == 3

    def test_single_child_is_not_pooled(self, engine):
        """A one-to-one derivation is not a pool."""
        engine.apply(LoadSequence(sequence="ATGC", as_id="x"))
        engine.apply(Reverse(input="x"))
        assert engine.state.lineage.pooled_groups() == {}


class TestLineageExport:
    """The gentle.lineage.v1 document."""

    def test_document_shape(self, digested):
        """Counts, pooled ops and topological order are reported."""
        doc = export_lineage(digested.state)
        assert doc["schema"] == LINEAGE_EXPORT_SCHEMA
        assert doc["node_count"] == 4
        assert doc["edge_count"] == 3
        assert doc["pooled_ops"] == {"op-2": [row["node_id"] for row in doc["nodes"][1:]]}
        assert doc["topological_order"][0] == digested.state.lineage.seq_to_node["demo"]

    def test_pool_size_rows(self, digested):
        """Rows carry the size of the pool that created them."""
        rows = {row["seq_id"]: row for row in export_lineage(digested.state)["nodes"]}
        assert rows["demo"]["pool_size"] == 1
        assert rows["demo_digest_1"]["pool_size"] == 3
        assert all(row["live"] for row in rows.values())

    def test_arrangement_rows(self, digested):
        """Arrangements list their lanes and source nodes."""
        digested.apply(CreateArrangementSerial(container_ids=["container-2"], name="lanes"))
        doc = export_lineage(digested.state)
        assert len(doc["arrangements"]) == 1
        row = doc["arrangements"][0]
        assert row["node_id"] == "arr:arrangement-1"
        assert row["display_name"] == "lanes"
        assert row["mode"] == "Serial"
        lineage = digested.state.lineage
        expected = [lineage.seq_to_node[f"demo_digest_{i}"] for i in (1, 2, 3)]
        assert row["source_node_ids"] == expected

    def test_export_is_deterministic(self, digested):
        """A reloaded copy exports the same document."""
        state = digested.state
        reloaded = GentleEngine.from_state(state.model_copy(deep=True)).state
        assert export_lineage(state) == export_lineage(reloaded)

    def test_cyclic_lineage_refuses_export(self, tmp_path):
        """Exporting a cyclic graph fails and leaves no file behind."""
        engine = GentleEngine()
        add_cycle(engine.state.lineage)
        target = tmp_path / "lineage.json"
        with pytest.raises(EngineError, match="cycle"):
            engine.apply(ExportLineage(path=str(target)))
        assert not target.exists()
