"""
Project state document and its persistence.

``load_state`` treats a missing file as an empty project. ``ProjectState.save_to_path``
writes to a temporary file in the target directory and renames it over the
target, so a crash mid-write never leaves a truncated state file behind.

There is no locking: two processes writing the same path race, and the last
writer wins.
"""

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from eliot import start_action
from pydantic import BaseModel, Field, ValidationError

from gentle_mcp.containers import ContainerState
from gentle_mcp.errors import EngineError, ErrorCode, StateParseError
from gentle_mcp.lineage import LineageGraph

DEFAULT_STATE_PATH = ".gentle_state.json"
DEFAULT_MAX_FRAGMENTS_PER_CONTAINER = 80_000

PathLike = Union[str, os.PathLike]


class SequenceFeature(BaseModel):
    """An annotation on a sequence, as produced by a file importer."""
    kind: str = Field(description="Feature type, e.g. 'gene', 'CDS', 'source'")
    start: int = Field(description="0-based start position")
    end: int = Field(description="0-based exclusive end position")
    strand: Optional[int] = Field(default=None, description="1, -1 or None")
    qualifiers: Dict[str, List[str]] = Field(default_factory=dict)


class SequenceEnd(BaseModel):
    """One end of a linear molecule, typed the way pydna reports it."""
    kind: str = Field(default="blunt", description="\"5'\", \"3'\" or \"blunt\"")
    sticky: str = Field(default="", description="Single-stranded bases, 5' to 3'")

    @property
    def is_blunt(self) -> bool:
        return self.kind == "blunt"


class SequenceRecord(BaseModel):
    """A DNA sequence stored in the project."""
    sequence: str = Field(description="Forward strand, upper case")
    name: Optional[str] = Field(default=None, description="Display name")
    description: str = ""
    circular: bool = False
    features: List[SequenceFeature] = Field(default_factory=list)
    left_end: SequenceEnd = Field(default_factory=SequenceEnd)
    right_end: SequenceEnd = Field(default_factory=SequenceEnd)

    @property
    def length(self) -> int:
        return len(self.sequence)


class DisplaySettings(BaseModel):
    show_sequence_panel: bool = True
    show_map_panel: bool = True
    show_features: bool = True
    show_cds_features: bool = True
    show_gene_features: bool = True
    show_mrna_features: bool = True
    show_tfbs: bool = False
    show_restriction_enzymes: bool = True
    show_gc_contents: bool = True
    show_open_reading_frames: bool = True
    show_methylation_sites: bool = False
    linear_view_start_bp: int = 0
    linear_view_span_bp: int = 0


class EngineParameters(BaseModel):
    max_fragments_per_container: int = DEFAULT_MAX_FRAGMENTS_PER_CONTAINER


class ProjectState(BaseModel):
    """The whole persisted project document."""
    sequences: Dict[str, SequenceRecord] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    display: DisplaySettings = Field(default_factory=DisplaySettings)
    lineage: LineageGraph = Field(default_factory=LineageGraph)
    parameters: EngineParameters = Field(default_factory=EngineParameters)
    container_state: ContainerState = Field(default_factory=ContainerState)
    next_op_counter: int = Field(default=0, description="Last issued 'op-<n>' counter")

    @classmethod
    def load_from_path(cls, path: PathLike) -> "ProjectState":
        """
        Parse a state file that must exist.

        Raises:
            EngineError: code ``Io`` if the file cannot be read.
            StateParseError: if the content is not UTF-8 or not a valid
                project state.
        """
        with start_action(action_type="state:load", path=str(path)) as action:
            try:
                text = Path(path).read_text(encoding="utf-8")
            except UnicodeDecodeError as e:
                raise StateParseError(f"Could not parse state JSON '{path}': {e}")
            except (OSError, ValueError) as e:
                raise EngineError(ErrorCode.Io, f"Could not read state file '{path}': {e}")
            try:
                state = cls.model_validate_json(text)
            except ValidationError as e:
                raise StateParseError(f"Could not parse state JSON '{path}': {e}")
            action.add_success_fields(sequence_count=len(state.sequences))
            return state

    def save_to_path(self, path: PathLike) -> None:
        """
        Serialize the whole document to ``path``.

        Raises:
            EngineError: code ``Io`` if the file cannot be written, including
                paths the OS rejects outright such as ones with a NUL byte.
        """
        target = Path(path)
        with start_action(action_type="state:save", path=str(target), sequence_count=len(self.sequences)):
            text = self.to_json()
            tmp_name = None
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                with tempfile.NamedTemporaryFile(
                    "w",
                    encoding="utf-8",
                    dir=target.parent,
                    prefix=f".{target.name}.",
                    suffix=".tmp",
                    delete=False,
                ) as tmp:
                    tmp_name = tmp.name
                    tmp.write(text)
                    tmp.flush()
                    os.fsync(tmp.fileno())
                os.replace(tmp_name, target)
                tmp_name = None
            except (OSError, ValueError) as e:
                raise EngineError(ErrorCode.Io, f"Could not write state file '{path}': {e}")
            finally:
                if tmp_name is not None and os.path.exists(tmp_name):
                    os.unlink(tmp_name)

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)


def load_state(path: PathLike) -> ProjectState:
    """Load ``path``, or return a fresh default state when it does not exist."""
    if not Path(path).exists():
        return ProjectState()
    return ProjectState.load_from_path(path)


def save_state(state: ProjectState, path: PathLike) -> None:
    state.save_to_path(path)
