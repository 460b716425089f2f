"""
Operation and workflow payloads.

An operation travels as externally tagged JSON, one key naming the variant::

    {"SetParameter": {"name": "max_fragments_per_container", "value": 123}}
    {"Digest": {"input": "pUC19", "enzymes": ["EcoRI", "BamHI"]}}

A workflow is ``{"run_id": "...", "ops": [<operation>, ...]}``.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from gentle_mcp.errors import PayloadError
from gentle_mcp.lineage import SequenceOrigin


class ExportFormat(str, Enum):
    GenBank = "GenBank"
    Fasta = "Fasta"


class DisplayTarget(str, Enum):
    SequencePanel = "SequencePanel"
    MapPanel = "MapPanel"
    Features = "Features"
    CdsFeatures = "CdsFeatures"
    GeneFeatures = "GeneFeatures"
    MrnaFeatures = "MrnaFeatures"
    Tfbs = "Tfbs"
    RestrictionEnzymes = "RestrictionEnzymes"
    GcContents = "GcContents"
    OpenReadingFrames = "OpenReadingFrames"
    MethylationSites = "MethylationSites"


class OperationBase(BaseModel):
    """Common base of every operation variant."""
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    @property
    def variant(self) -> str:
        return type(self).__name__


# --- parameters and I/O ---------------------------------------------------

class SetParameter(OperationBase):
    name: str = Field(description="Parameter name, e.g. 'max_fragments_per_container'")
    value: Any = Field(description="New value; validated per parameter")


class LoadSequence(OperationBase):
    sequence: str = Field(description="DNA sequence text")
    name: Optional[str] = None
    as_id: Optional[str] = Field(default=None, description="Requested sequence id")
    circular: bool = False
    origin: SequenceOrigin = SequenceOrigin.ImportedSynthetic


class LoadFile(OperationBase):
    path: str = Field(description="GenBank or FASTA file to import")
    as_id: Optional[str] = None


class SaveFile(OperationBase):
    seq_id: str
    path: str
    format: ExportFormat


class ExportLineage(OperationBase):
    path: str = Field(description="Destination of the lineage JSON document")


# --- fragment producing -----------------------------------------------------

class Digest(OperationBase):
    input: str
    enzymes: List[str]
    output_prefix: Optional[str] = None


class DigestContainer(OperationBase):
    container_id: str
    enzymes: List[str]
    output_prefix: Optional[str] = None


class MergeContainers(OperationBase):
    inputs: List[str]
    output_prefix: Optional[str] = None


class MergeContainersById(OperationBase):
    container_ids: List[str]
    output_prefix: Optional[str] = None


class Pcr(OperationBase):
    template: str
    forward_primer: str
    reverse_primer: str
    output_id: Optional[str] = None
    unique: Optional[bool] = Field(default=None, description="Fail unless exactly one amplicon is produced")


class LigationProtocol(str, Enum):
    Sticky = "Sticky"
    Blunt = "Blunt"


class Ligation(OperationBase):
    inputs: List[str] = Field(description="Sequences tried pairwise in every order")
    circularize_if_possible: bool = False
    output_id: Optional[str] = None
    protocol: LigationProtocol = LigationProtocol.Sticky
    output_prefix: Optional[str] = None
    unique: Optional[bool] = None


class LigationContainer(OperationBase):
    container_id: str
    circularize_if_possible: bool = False
    output_id: Optional[str] = None
    protocol: LigationProtocol = LigationProtocol.Sticky
    output_prefix: Optional[str] = None
    unique: Optional[bool] = None


class ExtractRegion(OperationBase):
    input: str
    from_: int = Field(alias="from", ge=0)
    to: int = Field(ge=0)
    output_id: Optional[str] = None


class Reverse(OperationBase):
    input: str
    output_id: Optional[str] = None


class Complement(OperationBase):
    input: str
    output_id: Optional[str] = None


class ReverseComplement(OperationBase):
    input: str
    output_id: Optional[str] = None


class Branch(OperationBase):
    input: str
    output_id: Optional[str] = None


# --- selection ------------------------------------------------------------------

class SelectCandidate(OperationBase):
    input: str
    criterion: str = Field(description="Free-text reason recorded with the selection")
    output_id: Optional[str] = None


class FilterByMolecularWeight(OperationBase):
    inputs: List[str]
    min_bp: int = Field(ge=0)
    max_bp: int = Field(ge=0)
    error: float = Field(default=0.0, description="Relative tolerance widening the range, 0.0 to 1.0")
    unique: bool = False
    output_prefix: Optional[str] = None


class FilterContainerByMolecularWeight(OperationBase):
    container_id: str
    min_bp: int = Field(ge=0)
    max_bp: int = Field(ge=0)
    error: float = 0.0
    unique: bool = False
    output_prefix: Optional[str] = None


# --- in-place edits ------------------------------------------------------------

class SetTopology(OperationBase):
    seq_id: str
    circular: bool


class SetDisplayVisibility(OperationBase):
    target: DisplayTarget
    visible: bool


class SetLinearViewport(OperationBase):
    start_bp: int = Field(ge=0)
    span_bp: int = Field(ge=0)


# --- registry ----------------------------------------------------------------------

class CreateContainer(OperationBase):
    inputs: List[str]
    name: Optional[str] = None


class CreateArrangementSerial(OperationBase):
    container_ids: List[str]
    arrangement_id: Optional[str] = None
    name: Optional[str] = None
    ladders: List[str] = Field(default_factory=list)


OPERATION_TYPES: Dict[str, Type[OperationBase]] = {
    cls.__name__: cls
    for cls in (
        LoadFile,
        LoadSequence,
        SaveFile,
        ExportLineage,
        DigestContainer,
        MergeContainersById,
        LigationContainer,
        FilterContainerByMolecularWeight,
        Digest,
        Ligation,
        MergeContainers,
        Pcr,
        ExtractRegion,
        SelectCandidate,
        FilterByMolecularWeight,
        Reverse,
        Complement,
        ReverseComplement,
        Branch,
        SetDisplayVisibility,
        SetLinearViewport,
        SetTopology,
        SetParameter,
        CreateContainer,
        CreateArrangementSerial,
    )
}


def parse_operation(payload: Any) -> OperationBase:
    """
    Decode one externally tagged operation.

    Raises:
        PayloadError: unknown variant, malformed envelope or invalid fields.
    """
    if isinstance(payload, OperationBase):
        return payload
    if not isinstance(payload, dict) or len(payload) != 1:
        raise PayloadError(
            "expected an object with exactly one operation variant key, "
            "e.g. {\"SetParameter\": {\"name\": ..., \"value\": ...}}"
        )
    (variant, body), = payload.items()
    cls = OPERATION_TYPES.get(variant)
    if cls is None:
        raise PayloadError(
            f"unknown operation variant '{variant}', expected one of: {', '.join(OPERATION_TYPES)}"
        )
    if not isinstance(body, dict):
        raise PayloadError(f"operation '{variant}' expects an object body")
    try:
        return cls.model_validate(body)
    except ValueError as e:
        raise PayloadError(f"invalid '{variant}' payload: {e}")


def operation_payload(op: OperationBase) -> Dict[str, Any]:
    """Inverse of :func:`parse_operation`."""
    return {op.variant: op.model_dump(mode="json", by_alias=True)}


class Workflow(BaseModel):
    """Ordered operations applied under one run id."""
    run_id: str = Field(description="Identifier stamped on every lineage edge of the run")
    ops: List[OperationBase] = Field(default_factory=list)

    @field_validator("ops", mode="before")
    @classmethod
    def _parse_ops(cls, value: Any) -> List[OperationBase]:
        if not isinstance(value, list):
            raise PayloadError("workflow.ops must be an array of operations")
        parsed = []
        for index, raw in enumerate(value):
            try:
                parsed.append(parse_operation(raw))
            except PayloadError as e:
                raise PayloadError(f"ops[{index}]: {e}")
        return parsed

    @field_serializer("ops")
    def _serialize_ops(self, ops: List[OperationBase]) -> List[Dict[str, Any]]:
        return [operation_payload(op) for op in ops]


def parse_workflow(payload: Any) -> Workflow:
    """
    Decode a workflow payload.

    Raises:
        PayloadError: if the payload is not a valid workflow.
    """
    if isinstance(payload, Workflow):
        return payload
    if not isinstance(payload, dict):
        raise PayloadError("expected a workflow object with 'run_id' and 'ops'")
    try:
        return Workflow.model_validate(payload)
    except ValueError as e:
        raise PayloadError(str(e))


class OpResult(BaseModel):
    """Effect summary of one applied operation."""
    op_id: str
    created_seq_ids: List[str] = Field(default_factory=list)
    changed_seq_ids: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    messages: List[str] = Field(default_factory=list)


class OperationRecord(BaseModel):
    """Journal entry kept by the engine for every successful application."""
    run_id: str
    op: OperationBase
    result: OpResult

    @field_serializer("op")
    def _serialize_op(self, op: OperationBase) -> Dict[str, Any]:
        return operation_payload(op)
