"""
GENtle project engine.

The engine owns one live ``ProjectState`` and is the only component that
mutates it. Every mutation goes through :meth:`GentleEngine.apply` or
:meth:`GentleEngine.apply_workflow`; lineage nodes, lineage edges and result
containers are recorded as part of the same call.

A single ``apply`` is all-or-nothing in memory: if the operation fails, the
state is restored to what it was before the call. ``apply_workflow`` stops at
the first failing operation and raises; operations before it stay applied in
memory, so callers must only persist after the whole workflow succeeded.
"""

import math
from typing import Callable, Dict, List, Optional, Type, Union

from eliot import log_message, start_action
from pydantic import BaseModel, Field

from gentle_mcp import dna
from gentle_mcp.containers import ArrangementMode, ContainerKind
from gentle_mcp.errors import EngineError, ErrorCode
from gentle_mcp.lineage import SequenceOrigin
from gentle_mcp.lineage_export import export_lineage_json
from gentle_mcp.operations import (
    OPERATION_TYPES,
    Branch,
    Complement,
    CreateArrangementSerial,
    CreateContainer,
    Digest,
    DigestContainer,
    DisplayTarget,
    ExportFormat,
    ExportLineage,
    ExtractRegion,
    FilterByMolecularWeight,
    FilterContainerByMolecularWeight,
    Ligation,
    LigationContainer,
    LigationProtocol,
    LoadFile,
    LoadSequence,
    MergeContainers,
    MergeContainersById,
    OperationBase,
    OperationRecord,
    OpResult,
    Pcr,
    Reverse,
    ReverseComplement,
    SaveFile,
    SelectCandidate,
    SetDisplayVisibility,
    SetLinearViewport,
    SetParameter,
    SetTopology,
    Workflow,
)
from gentle_mcp.state import DisplaySettings, ProjectState, SequenceRecord

INTERACTIVE_RUN_ID = "interactive"
ENGINE_PROTOCOL_VERSION = "v1"

DISPLAY_TARGET_FIELDS: Dict[DisplayTarget, str] = {
    DisplayTarget.SequencePanel: "show_sequence_panel",
    DisplayTarget.MapPanel: "show_map_panel",
    DisplayTarget.Features: "show_features",
    DisplayTarget.CdsFeatures: "show_cds_features",
    DisplayTarget.GeneFeatures: "show_gene_features",
    DisplayTarget.MrnaFeatures: "show_mrna_features",
    DisplayTarget.Tfbs: "show_tfbs",
    DisplayTarget.RestrictionEnzymes: "show_restriction_enzymes",
    DisplayTarget.GcContents: "show_gc_contents",
    DisplayTarget.OpenReadingFrames: "show_open_reading_frames",
    DisplayTarget.MethylationSites: "show_methylation_sites",
}

RESULT_CONTAINER_NAMES: Dict[Type[OperationBase], str] = {
    LoadFile: "Imported sequence",
    LoadSequence: "Imported sequence",
    Digest: "Digest products",
    DigestContainer: "Digest products",
    MergeContainers: "Merged container",
    MergeContainersById: "Merged container",
    Ligation: "Ligation products",
    LigationContainer: "Ligation products",
    Pcr: "PCR products",
    ExtractRegion: "Extracted region",
    SelectCandidate: "Selected candidate",
    FilterByMolecularWeight: "Molecular-weight filtered",
    FilterContainerByMolecularWeight: "Molecular-weight filtered",
    Reverse: "Derived sequence",
    Complement: "Derived sequence",
    ReverseComplement: "Derived sequence",
    Branch: "Derived sequence",
}


class Capabilities(BaseModel):
    protocol_version: str = ENGINE_PROTOCOL_VERSION
    supported_operations: List[str] = Field(default_factory=lambda: list(OPERATION_TYPES))
    supported_export_formats: List[str] = Field(default_factory=lambda: [f.value for f in ExportFormat])
    deterministic_operation_log: bool = True


class SequenceSummary(BaseModel):
    id: str
    name: Optional[str] = None
    length: int
    circular: bool


class ContainerSummary(BaseModel):
    id: str
    kind: str
    member_count: int
    members: List[str]


class StateSummary(BaseModel):
    """Deterministic digest of a project state."""
    sequence_count: int
    sequences: List[SequenceSummary]
    container_count: int
    containers: List[ContainerSummary]
    arrangement_count: int = 0
    lineage_node_count: int = 0
    lineage_edge_count: int = 0
    parameters: Dict[str, int] = Field(default_factory=dict)
    display: DisplaySettings


Handler = Callable[[OperationBase, OpResult], List[str]]


class GentleEngine:
    """Applies operations and workflows to one in-memory project state."""

    def __init__(self, state: Optional[ProjectState] = None):
        self.state = state if state is not None else ProjectState()
        self.journal: List[OperationRecord] = []
        self._handlers: Dict[Type[OperationBase], Handler] = {
            SetParameter: self._set_parameter,
            LoadSequence: self._load_sequence,
            LoadFile: self._load_file,
            SaveFile: self._save_file,
            ExportLineage: self._export_lineage,
            Digest: self._digest,
            DigestContainer: self._digest_container,
            MergeContainers: self._merge_containers,
            MergeContainersById: self._merge_containers_by_id,
            Ligation: self._ligation,
            LigationContainer: self._ligation_container,
            Pcr: self._pcr,
            ExtractRegion: self._extract_region,
            Reverse: self._reverse,
            Complement: self._complement,
            ReverseComplement: self._reverse_complement,
            Branch: self._branch,
            SelectCandidate: self._select_candidate,
            FilterByMolecularWeight: self._filter_by_molecular_weight,
            FilterContainerByMolecularWeight: self._filter_container_by_molecular_weight,
            SetTopology: self._set_topology,
            SetDisplayVisibility: self._set_display_visibility,
            SetLinearViewport: self._set_linear_viewport,
            CreateContainer: self._create_container,
            CreateArrangementSerial: self._create_arrangement_serial,
        }
        self._reconcile()

    @classmethod
    def from_state(cls, state: ProjectState) -> "GentleEngine":
        """Wrap ``state``, giving every sequence a lineage node and a container."""
        return cls(state)

    @staticmethod
    def capabilities() -> Capabilities:
        return Capabilities()

    @property
    def operation_log(self) -> List[OperationRecord]:
        return list(self.journal)

    # ------------------------------------------------------------------ apply

    def apply(self, op: OperationBase) -> OpResult:
        """
        Apply one operation with run id ``interactive``.

        Raises:
            EngineError: if a precondition fails; the state is left unchanged.
        """
        return self._apply_recorded(op, INTERACTIVE_RUN_ID)

    def apply_workflow(self, workflow: Workflow) -> List[OpResult]:
        """
        Apply ``workflow.ops`` in order, stopping at the first failure.

        Raises:
            EngineError: from the first failing operation. No partial result
                list is returned.
        """
        with start_action(
            action_type="engine:apply_workflow",
            run_id=workflow.run_id,
            op_count=len(workflow.ops),
        ) as action:
            results = [self._apply_recorded(op, workflow.run_id) for op in workflow.ops]
            action.add_success_fields(result_count=len(results))
            return results

    def _apply_recorded(self, op: OperationBase, run_id: str) -> OpResult:
        with start_action(action_type="engine:apply", operation=op.variant, run_id=run_id) as action:
            before = self.state.model_copy(deep=True)
            try:
                result = self._apply_internal(op, run_id)
            except EngineError:
                self.state = before
                raise
            except Exception as e:
                self.state = before
                raise EngineError(ErrorCode.Internal, f"Operation {op.variant} failed: {e}")
            self.journal.append(OperationRecord(run_id=run_id, op=op, result=result))
            action.add_success_fields(
                op_id=result.op_id,
                created_seq_ids=result.created_seq_ids,
                changed_seq_ids=result.changed_seq_ids,
            )
            return result

    def _apply_internal(self, op: OperationBase, run_id: str) -> OpResult:
        self._reconcile()
        handler = self._handlers.get(type(op))
        if handler is None:
            raise EngineError(ErrorCode.Unsupported, f"Operation '{op.variant}' is not supported")
        result = OpResult(op_id=self._next_op_id())
        parent_seq_ids = handler(op, result)
        self.state.lineage.add_edges(parent_seq_ids, result.created_seq_ids, result.op_id, run_id)
        self._add_container_from_result(op, result)
        return result

    # ---------------------------------------------------------------- queries

    def summarize_state(self) -> StateSummary:
        sequences = [
            SequenceSummary(id=seq_id, name=record.name, length=record.length, circular=record.circular)
            for seq_id, record in sorted(self.state.sequences.items())
        ]
        containers = [
            ContainerSummary(
                id=container_id,
                kind=container.kind.value,
                member_count=len(container.members),
                members=list(container.members),
            )
            for container_id, container in sorted(self.state.container_state.containers.items())
        ]
        return StateSummary(
            sequence_count=len(sequences),
            sequences=sequences,
            container_count=len(containers),
            containers=containers,
            arrangement_count=len(self.state.container_state.arrangements),
            lineage_node_count=len(self.state.lineage.nodes),
            lineage_edge_count=len(self.state.lineage.edges),
            parameters=self.state.parameters.model_dump(),
            display=self.state.display,
        )

    # ---------------------------------------------------------------- helpers

    def _next_op_id(self) -> str:
        self.state.next_op_counter += 1
        return f"op-{self.state.next_op_counter}"

    def _reconcile(self) -> None:
        registry = self.state.container_state
        for seq_id in list(self.state.sequences):
            self.state.lineage.ensure_node(seq_id)
            if seq_id not in registry.seq_to_latest_container:
                registry.add_container([seq_id], ContainerKind.Singleton, f"Imported sequence {seq_id}")

    def _add_container_from_result(self, op: OperationBase, result: OpResult) -> None:
        if not result.created_seq_ids:
            return
        if isinstance(op, SelectCandidate):
            kind = ContainerKind.Selection
        elif len(result.created_seq_ids) > 1:
            kind = ContainerKind.Pool
        else:
            kind = ContainerKind.Singleton
        self.state.container_state.add_container(
            result.created_seq_ids,
            kind,
            RESULT_CONTAINER_NAMES.get(type(op)),
            result.op_id,
        )

    def _max_fragments(self) -> int:
        return self.state.parameters.max_fragments_per_container

    def _sequence(self, seq_id: str) -> SequenceRecord:
        record = self.state.sequences.get(seq_id)
        if record is None:
            raise EngineError(ErrorCode.NotFound, f"Sequence '{seq_id}' not found")
        return record

    def _unique_seq_id(self, base: str) -> str:
        base = base.strip() or "sequence"
        if base not in self.state.sequences:
            return base
        i = 2
        while f"{base}_{i}" in self.state.sequences:
            i += 1
        return f"{base}_{i}"

    def _insert(
        self,
        base: str,
        record: SequenceRecord,
        origin: SequenceOrigin,
        result: OpResult,
    ) -> str:
        seq_id = self._unique_seq_id(base)
        self.state.sequences[seq_id] = record
        self.state.lineage.add_node(seq_id, origin, result.op_id)
        result.created_seq_ids.append(seq_id)
        return seq_id

    @staticmethod
    def _warn(result: OpResult, warning: str) -> None:
        log_message(message_type="engine:warning", op_id=result.op_id, warning=warning)
        result.warnings.append(warning)

    # --------------------------------------------------------------- handlers

    def _set_parameter(self, op: SetParameter, result: OpResult) -> List[str]:
        if op.name != "max_fragments_per_container":
            raise EngineError(ErrorCode.Unsupported, f"Unknown parameter '{op.name}'")
        value = op.value
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise EngineError(
                ErrorCode.InvalidInput,
                "SetParameter max_fragments_per_container requires a positive integer",
            )
        if value == 0:
            raise EngineError(ErrorCode.InvalidInput, "max_fragments_per_container must be >= 1")
        self.state.parameters.max_fragments_per_container = value
        result.messages.append(f"Set parameter '{op.name}' to {value}")
        return []

    def _load_sequence(self, op: LoadSequence, result: OpResult) -> List[str]:
        text = dna.normalize_dna_text(op.sequence)
        if not text:
            raise EngineError(ErrorCode.InvalidInput, "LoadSequence requires a non-empty DNA sequence")
        base = (op.as_id or "").strip() or (op.name or "").strip() or "sequence"
        record = SequenceRecord(sequence=text, name=op.name, circular=op.circular)
        seq_id = self._insert(base, record, op.origin, result)
        result.messages.append(f"Loaded sequence '{seq_id}' ({len(text)} bp)")
        return []

    def _load_file(self, op: LoadFile, result: OpResult) -> List[str]:
        record = dna.read_sequence_file(op.path)
        base = (op.as_id or "").strip() or dna.derive_seq_id(op.path)
        origin = dna.classify_import_origin(op.path, record)
        seq_id = self._insert(base, record, origin, result)
        result.messages.append(f"Loaded '{op.path}' as '{seq_id}'")
        return []

    def _save_file(self, op: SaveFile, result: OpResult) -> List[str]:
        record = self._sequence(op.seq_id)
        file_format = "gb" if op.format == ExportFormat.GenBank else "fasta"
        dna.write_sequence_file(op.seq_id, record, op.path, file_format)
        result.changed_seq_ids.append(op.seq_id)
        result.messages.append(f"Wrote '{op.seq_id}' to '{op.path}'")
        return []

    def _export_lineage(self, op: ExportLineage, result: OpResult) -> List[str]:
        text = export_lineage_json(self.state)
        try:
            with open(op.path, "w", encoding="utf-8") as handle:
                handle.write(text)
        except (OSError, ValueError) as e:
            raise EngineError(ErrorCode.Io, f"Could not write lineage export '{op.path}': {e}")
        result.messages.append(f"Wrote lineage export to '{op.path}'")
        return []

    def _digest(self, op: Digest, result: OpResult) -> List[str]:
        record = self._sequence(op.input)
        found, missing = dna.resolve_enzymes(op.enzymes)
        if missing:
            self._warn(result, f"Unknown enzymes ignored: {','.join(missing)}")
        fragments = dna.digest(record.sequence, record.circular, found, self._max_fragments())
        prefix = op.output_prefix or f"{op.input}_digest"
        for i, fragment in enumerate(fragments, start=1):
            self._insert(f"{prefix}_{i}", fragment, SequenceOrigin.Derived, result)
        result.messages.append(f"Digest created {len(result.created_seq_ids)} fragment(s)")
        return [op.input]

    def _digest_container(self, op: DigestContainer, result: OpResult) -> List[str]:
        inputs = self.state.container_state.container_members(op.container_id, self.state.sequences)
        found, missing = dna.resolve_enzymes(op.enzymes)
        if missing:
            self._warn(result, f"Unknown enzymes ignored: {','.join(missing)}")
        limit = self._max_fragments()
        prefix = op.output_prefix or f"{op.container_id}_digest"
        for input_id in inputs:
            record = self._sequence(input_id)
            for i, fragment in enumerate(dna.digest(record.sequence, record.circular, found, limit), start=1):
                self._insert(f"{prefix}_{input_id}_{i}", fragment, SequenceOrigin.Derived, result)
                if len(result.created_seq_ids) > limit:
                    raise EngineError(
                        ErrorCode.InvalidInput,
                        f"Digest produced more than max_fragments_per_container={limit}",
                    )
        result.messages.append(
            f"Digest container '{op.container_id}' created {len(result.created_seq_ids)} fragment(s)"
        )
        return inputs

    def _merge(self, inputs: List[str], output_prefix: Optional[str], result: OpResult) -> List[str]:
        if not inputs:
            raise EngineError(ErrorCode.InvalidInput, "MergeContainers requires at least one input sequence")
        limit = self._max_fragments()
        if len(inputs) > limit:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"MergeContainers input count {len(inputs)} exceeds max_fragments_per_container={limit}",
            )
        prefix = output_prefix or "merged"
        for i, input_id in enumerate(inputs, start=1):
            record = self._sequence(input_id).model_copy(deep=True)
            self._insert(f"{prefix}_{i}", record, SequenceOrigin.Derived, result)
        result.messages.append(f"Merged {len(inputs)} input sequence(s) into container prefix '{prefix}'")
        return inputs

    def _merge_containers(self, op: MergeContainers, result: OpResult) -> List[str]:
        return self._merge(op.inputs, op.output_prefix, result)

    def _merge_containers_by_id(self, op: MergeContainersById, result: OpResult) -> List[str]:
        inputs = self.state.container_state.flatten_members(
            op.container_ids, self.state.sequences, self._max_fragments()
        )
        return self._merge(inputs, op.output_prefix, result)

    def _ligate(
        self,
        inputs: List[str],
        op: Union[Ligation, LigationContainer],
        result: OpResult,
    ) -> List[str]:
        if len(inputs) < 2:
            raise EngineError(ErrorCode.InvalidInput, "Ligation requires at least two input sequences")
        limit = self._max_fragments()
        blunt = op.protocol == LigationProtocol.Blunt
        accepted = []
        for i, left_id in enumerate(inputs):
            for j, right_id in enumerate(inputs):
                if i == j:
                    continue
                left = self._sequence(left_id)
                right = self._sequence(right_id)
                if not dna.ends_ligate(left.right_end, right.left_end, blunt):
                    continue
                accepted.append((left_id, right_id, dna.ligate(left, right, op.circularize_if_possible, blunt)))
                if len(accepted) > limit:
                    raise EngineError(
                        ErrorCode.InvalidInput,
                        f"Ligation produced more than max_fragments_per_container={limit}",
                    )
        if not accepted:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"No ligation products found for protocol '{op.protocol.value}'",
            )
        if op.unique and len(accepted) != 1:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"Ligation unique=true requires exactly one product, found {len(accepted)}",
            )
        if op.output_id and len(accepted) != 1:
            raise EngineError(
                ErrorCode.InvalidInput,
                "Ligation output_id can only be used when exactly one product is produced",
            )
        prefix = op.output_prefix or "ligation"
        for i, (left_id, right_id, product) in enumerate(accepted, start=1):
            base = op.output_id if op.output_id else f"{prefix}_{i}"
            seq_id = self._insert(base, product, SequenceOrigin.Derived, result)
            result.messages.append(f"Ligation product '{seq_id}' from '{left_id}' + '{right_id}'")
        return inputs

    def _ligation(self, op: Ligation, result: OpResult) -> List[str]:
        return self._ligate(op.inputs, op, result)

    def _ligation_container(self, op: LigationContainer, result: OpResult) -> List[str]:
        inputs = self.state.container_state.container_members(op.container_id, self.state.sequences)
        return self._ligate(inputs, op, result)

    def _pcr(self, op: Pcr, result: OpResult) -> List[str]:
        template = self._sequence(op.template)
        products = dna.pcr_products(template.sequence, template.circular, op.forward_primer, op.reverse_primer)
        limit = self._max_fragments()
        if len(products) > limit:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"PCR produced {len(products)} amplicons, exceeding max_fragments_per_container={limit}",
            )
        if op.unique and len(products) != 1:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"PCR unique=true requires exactly one amplicon, found {len(products)}",
            )
        if op.output_id and len(products) != 1:
            raise EngineError(
                ErrorCode.InvalidInput,
                "PCR output_id can only be used when exactly one amplicon is produced",
            )
        default_base = f"{op.template}_pcr"
        for i, amplicon in enumerate(products, start=1):
            if op.output_id:
                base = op.output_id
            elif len(products) == 1:
                base = default_base
            else:
                base = f"{default_base}_{i}"
            seq_id = self._insert(base, SequenceRecord(sequence=amplicon), SequenceOrigin.Derived, result)
            result.messages.append(f"PCR product '{seq_id}' created (len {len(amplicon)})")
        return [op.template]

    def _extract_region(self, op: ExtractRegion, result: OpResult) -> List[str]:
        record = self._sequence(op.input)
        text = dna.extract_region(record.sequence, record.circular, op.from_, op.to)
        seq_id = self._insert(
            op.output_id or f"{op.input}_region",
            SequenceRecord(sequence=text),
            SequenceOrigin.Derived,
            result,
        )
        result.messages.append(f"Extracted region {op.from_}..{op.to} from '{op.input}' into '{seq_id}'")
        return [op.input]

    def _derive(
        self,
        input_id: str,
        output_id: Optional[str],
        suffix: str,
        transform: Callable[[str], str],
        label: str,
        result: OpResult,
    ) -> List[str]:
        record = self._sequence(input_id)
        derived = SequenceRecord(sequence=transform(record.sequence), circular=record.circular)
        seq_id = self._insert(output_id or f"{input_id}{suffix}", derived, SequenceOrigin.Derived, result)
        result.messages.append(f"Created {label} sequence '{seq_id}' from '{input_id}'")
        return [input_id]

    def _reverse(self, op: Reverse, result: OpResult) -> List[str]:
        return self._derive(op.input, op.output_id, "_rev", dna.reverse_text, "reverse", result)

    def _complement(self, op: Complement, result: OpResult) -> List[str]:
        return self._derive(op.input, op.output_id, "_comp", dna.complement_text, "complement", result)

    def _reverse_complement(self, op: ReverseComplement, result: OpResult) -> List[str]:
        return self._derive(
            op.input, op.output_id, "_revcomp", dna.reverse_complement_text, "reverse-complement", result
        )

    def _branch(self, op: Branch, result: OpResult) -> List[str]:
        record = self._sequence(op.input).model_copy(deep=True)
        seq_id = self._insert(op.output_id or f"{op.input}_branch", record, SequenceOrigin.Branch, result)
        result.messages.append(f"Branched '{op.input}' into '{seq_id}'")
        return [op.input]

    def _select_candidate(self, op: SelectCandidate, result: OpResult) -> List[str]:
        record = self._sequence(op.input).model_copy(deep=True)
        seq_id = self._insert(
            op.output_id or f"{op.input}_selected", record, SequenceOrigin.InSilicoSelection, result
        )
        self._warn(
            result,
            "Selection operation is in-silico and may not directly correspond to a unique wet-lab product",
        )
        result.messages.append(
            f"Selected candidate '{seq_id}' from '{op.input}' using criterion '{op.criterion}'"
        )
        return [op.input]

    def _filter_molecular_weight(
        self,
        inputs: List[str],
        op: Union[FilterByMolecularWeight, FilterContainerByMolecularWeight],
        result: OpResult,
    ) -> List[str]:
        if not inputs:
            raise EngineError(
                ErrorCode.InvalidInput, "FilterByMolecularWeight requires at least one input sequence"
            )
        if op.min_bp > op.max_bp:
            raise EngineError(ErrorCode.InvalidInput, f"min_bp ({op.min_bp}) must be <= max_bp ({op.max_bp})")
        if not 0.0 <= op.error <= 1.0:
            raise EngineError(ErrorCode.InvalidInput, "error must be between 0.0 and 1.0")

        min_allowed = math.floor(op.min_bp * (1.0 - op.error))
        max_allowed = math.ceil(op.max_bp * (1.0 + op.error))
        matches = [seq_id for seq_id in inputs if min_allowed <= self._sequence(seq_id).length <= max_allowed]

        limit = self._max_fragments()
        if len(matches) > limit:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"FilterByMolecularWeight produced {len(matches)} candidates, "
                f"exceeding max_fragments_per_container={limit}",
            )
        if op.unique and len(matches) != 1:
            raise EngineError(
                ErrorCode.InvalidInput, f"unique=true requires exactly one match, found {len(matches)}"
            )

        prefix = op.output_prefix or "mw_filter"
        for i, seq_id in enumerate(matches, start=1):
            record = self._sequence(seq_id).model_copy(deep=True)
            self._insert(f"{prefix}_{i}", record, SequenceOrigin.InSilicoSelection, result)
        result.messages.append(
            f"Molecular-weight filter kept {len(matches)} sequence(s) in effective range "
            f"{min_allowed}-{max_allowed} bp (requested {op.min_bp}-{op.max_bp} bp, error={op.error:.3f})"
        )
        return inputs

    def _filter_by_molecular_weight(self, op: FilterByMolecularWeight, result: OpResult) -> List[str]:
        return self._filter_molecular_weight(op.inputs, op, result)

    def _filter_container_by_molecular_weight(
        self, op: FilterContainerByMolecularWeight, result: OpResult
    ) -> List[str]:
        inputs = self.state.container_state.container_members(op.container_id, self.state.sequences)
        return self._filter_molecular_weight(inputs, op, result)

    def _set_topology(self, op: SetTopology, result: OpResult) -> List[str]:
        record = self._sequence(op.seq_id)
        self.state.lineage.ensure_node(op.seq_id)
        record.circular = op.circular
        result.changed_seq_ids.append(op.seq_id)
        result.messages.append(
            f"Set topology of '{op.seq_id}' to {'circular' if op.circular else 'linear'}"
        )
        return []

    def _set_display_visibility(self, op: SetDisplayVisibility, result: OpResult) -> List[str]:
        field_name = DISPLAY_TARGET_FIELDS[op.target]
        setattr(self.state.display, field_name, op.visible)
        result.messages.append(
            f"Set display target '{field_name[len('show_'):]}' to {str(op.visible).lower()}"
        )
        return []

    def _set_linear_viewport(self, op: SetLinearViewport, result: OpResult) -> List[str]:
        self.state.display.linear_view_start_bp = op.start_bp
        self.state.display.linear_view_span_bp = op.span_bp
        result.messages.append(f"Set linear viewport start_bp={op.start_bp}, span_bp={op.span_bp}")
        return []

    def _create_container(self, op: CreateContainer, result: OpResult) -> List[str]:
        if not op.inputs:
            raise EngineError(ErrorCode.InvalidInput, "CreateContainer requires at least one sequence id")
        for seq_id in op.inputs:
            self._sequence(seq_id)
        limit = self._max_fragments()
        if len(op.inputs) > limit:
            raise EngineError(
                ErrorCode.InvalidInput,
                f"CreateContainer member count {len(op.inputs)} exceeds max_fragments_per_container={limit}",
            )
        kind = ContainerKind.Pool if len(set(op.inputs)) > 1 else ContainerKind.Singleton
        container_id = self.state.container_state.add_container(op.inputs, kind, op.name, result.op_id)
        members = self.state.container_state.containers[container_id].members
        result.messages.append(f"Created container '{container_id}' with {len(members)} member(s)")
        return []

    def _create_arrangement_serial(self, op: CreateArrangementSerial, result: OpResult) -> List[str]:
        arrangement_id = self.state.container_state.add_arrangement(
            op.container_ids,
            ArrangementMode.Serial,
            created_by_op=result.op_id,
            name=op.name,
            ladders=op.ladders,
            arrangement_id=op.arrangement_id,
        )
        result.messages.append(
            f"Created arrangement '{arrangement_id}' with {len(op.container_ids)} lane(s)"
        )
        return []
