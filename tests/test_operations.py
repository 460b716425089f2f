"""Tests for operation and workflow payload decoding."""

import pytest

from gentle_mcp.errors import PayloadError
from gentle_mcp.operations import (
    OPERATION_TYPES,
    ExtractRegion,
    FilterByMolecularWeight,
    Ligation,
    LigationProtocol,
    Pcr,
    SetParameter,
    Workflow,
    operation_payload,
    parse_operation,
    parse_workflow,
)


class TestParseOperation:
    """Externally tagged operation envelopes."""

    def test_externally_tagged(self):
        """The single key names the variant."""
        op = parse_operation({"SetParameter": {"name": "max_fragments_per_container", "value": 7}})
        assert isinstance(op, SetParameter)
        assert op.value == 7
        assert op.variant == "SetParameter"

    def test_from_alias(self):
        """ExtractRegion reads and writes its start as "from"."""
        op = parse_operation({"ExtractRegion": {"input": "x", "from": 2, "to": 5}})
        assert isinstance(op, ExtractRegion)
        assert op.from_ == 2
        assert operation_payload(op)["ExtractRegion"]["from"] == 2

    @pytest.mark.parametrize("payload", [
        None,
        [],
        "SetParameter",
        {},
        {"SetParameter": {}, "Reverse": {}},
    ])
    def test_bad_envelope(self, payload):
        """Anything but a one-key object is rejected."""
        with pytest.raises(PayloadError):
            parse_operation(payload)

    def test_unknown_variant(self):
        """Unknown variant names are reported by name."""
        with pytest.raises(PayloadError, match="unknown operation variant 'Ligate'"):
            parse_operation({"Ligate": {}})

    def test_unknown_field(self):
        """Extra fields are rejected."""
        with pytest.raises(PayloadError):
            parse_operation({"Reverse": {"input": "x", "colour": "red"}})

    def test_missing_field(self):
        """Missing required fields name the variant."""
        with pytest.raises(PayloadError, match="invalid 'Digest' payload"):
            parse_operation({"Digest": {"input": "x"}})

    def test_negative_viewport(self):
        """Viewport coordinates cannot be negative."""
        with pytest.raises(PayloadError):
            parse_operation({"SetLinearViewport": {"start_bp": -1, "span_bp": 10}})

    def test_every_variant_round_trips_its_name(self):
        """Registry keys match the class names."""
        for name, cls in OPERATION_TYPES.items():
            assert cls.__name__ == name

    def test_pcr_unique_flag(self):
        """Pcr accepts an optional unique flag."""
        op = parse_operation({"Pcr": {
            "template": "tpl", "forward_primer": "ATG", "reverse_primer": "CAT", "unique": True,
        }})
        assert isinstance(op, Pcr)
        assert op.unique is True

    def test_ligation_defaults(self):
        """Ligation defaults to the sticky protocol without circularizing."""
        op = parse_operation({"Ligation": {"inputs": ["a", "b"]}})
        assert isinstance(op, Ligation)
        assert op.protocol == LigationProtocol.Sticky
        assert op.circularize_if_possible is False
        assert operation_payload(op)["Ligation"]["protocol"] == "Sticky"

    def test_molecular_weight_filter_rejects_negative_bounds(self):
        """Size bounds cannot be negative."""
        with pytest.raises(PayloadError, match="invalid 'FilterByMolecularWeight' payload"):
            parse_operation({"FilterByMolecularWeight": {"inputs": ["a"], "min_bp": -1, "max_bp": 10}})
        op = parse_operation({"FilterByMolecularWeight": {"inputs": ["a"], "min_bp": 1, "max_bp": 10}})
        assert isinstance(op, FilterByMolecularWeight)
        assert op.error == 0.0


class TestParseWorkflow:
    """Workflow documents."""

    def test_workflow(self):
        """Ops are decoded in order."""
        wf = parse_workflow({
            "run_id": "r1",
            "ops": [{"Reverse": {"input": "x"}}, {"Branch": {"input": "x", "output_id": "y"}}],
        })
        assert isinstance(wf, Workflow)
        assert [op.variant for op in wf.ops] == ["Reverse", "Branch"]

    def test_bad_op_index_in_message(self):
        """A bad op is reported with its index."""
        with pytest.raises(PayloadError, match=r"ops\[1\]"):
            parse_workflow({"run_id": "r1", "ops": [{"Reverse": {"input": "x"}}, {"Nope": {}}]})

    def test_missing_run_id(self):
        """run_id is required."""
        with pytest.raises(PayloadError):
            parse_workflow({"ops": []})

    def test_not_an_object(self):
        """A workflow must be a JSON object."""
        with pytest.raises(PayloadError):
            parse_workflow([1, 2])

    def test_serializes_tagged_ops(self):
        """Dumping a workflow writes tagged ops back."""
        wf = parse_workflow({"run_id": "r1", "ops": [{"ExtractRegion": {"input": "x", "from": 1, "to": 3}}]})
        dumped = wf.model_dump(mode="json")
        assert dumped["ops"][0]["ExtractRegion"]["from"] == 1
