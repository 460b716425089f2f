"""
Canonical workflow example files.

An example is a JSON document pairing a workflow with enough metadata to
validate it, run it in tests and render it as documentation::

    {
      "schema": "gentle.workflow_example.v1",
      "id": "digest_ecori_arrangement",
      "title": "...",
      "summary": "...",
      "test_mode": "always",
      "required_files": [],
      "tags": ["digest"],
      "workflow": {"run_id": "...", "ops": [...]}
    }
"""

import json
import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Union

from eliot import start_action
from pydantic import BaseModel, Field, ValidationError

from gentle_mcp.engine import GentleEngine
from gentle_mcp.errors import EngineError, GentleError
from gentle_mcp.operations import OpResult, Workflow

WORKFLOW_EXAMPLE_SCHEMA = "gentle.workflow_example.v1"
DEFAULT_WORKFLOW_EXAMPLE_DIR = "docs/examples/workflows"
DEFAULT_WORKFLOW_EXAMPLE_OUTPUT_DIR = "docs/examples/generated"
ONLINE_TEST_ENV = "GENTLE_TEST_ONLINE"

PathLike = Union[str, Path]


class WorkflowExampleError(GentleError):
    """An example file is invalid, missing inputs or failed to run."""


class TestMode(str, Enum):
    __test__ = False

    Always = "always"
    Skip = "skip"
    Online = "online"

    def should_run(self, online_enabled: bool) -> bool:
        if self is TestMode.Always:
            return True
        if self is TestMode.Online:
            return online_enabled
        return False

    @property
    def doc(self) -> str:
        return {
            TestMode.Always: "always (included in default test runs)",
            TestMode.Skip: "skip (validated for syntax only)",
            TestMode.Online: f"online (run only when {ONLINE_TEST_ENV}=1 with working internet)",
        }[self]


class WorkflowExample(BaseModel):
    schema_: str = Field(alias="schema")
    id: str
    title: str
    summary: str = ""
    test_mode: TestMode = TestMode.Always
    required_files: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    workflow: Workflow

    model_config = {"populate_by_name": True}


class LoadedWorkflowExample(BaseModel):
    path: Path
    example: WorkflowExample


def online_tests_enabled() -> bool:
    value = os.getenv(ONLINE_TEST_ENV, "").strip().lower()
    return value in ("1", "true", "yes", "on")


def validate_example(path: PathLike, example: WorkflowExample) -> None:
    """
    Raises:
        WorkflowExampleError: on the first structural problem found.
    """
    p = str(path)
    if example.schema_ != WORKFLOW_EXAMPLE_SCHEMA:
        raise WorkflowExampleError(
            f"Example '{p}' uses unsupported schema '{example.schema_}'; expected '{WORKFLOW_EXAMPLE_SCHEMA}'"
        )
    if not example.id.strip():
        raise WorkflowExampleError(f"Example '{p}' has empty id")
    if not example.title.strip():
        raise WorkflowExampleError(f"Example '{p}' has empty title")
    if not example.workflow.run_id.strip():
        raise WorkflowExampleError(f"Example '{p}' has empty workflow.run_id")
    if not example.workflow.ops:
        raise WorkflowExampleError(f"Example '{p}' has empty workflow.ops")
    if any(not f.strip() for f in example.required_files):
        raise WorkflowExampleError(f"Example '{p}' has blank entry in required_files")


def load_example(path: PathLike) -> WorkflowExample:
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise WorkflowExampleError(f"Could not read example '{path}': {e}")
    except json.JSONDecodeError as e:
        raise WorkflowExampleError(f"Could not parse example JSON '{path}': {e}")
    try:
        example = WorkflowExample.model_validate(raw)
    except (ValidationError, ValueError) as e:
        raise WorkflowExampleError(f"Could not parse example JSON '{path}': {e}")
    validate_example(path, example)
    return example


def load_examples(directory: PathLike = DEFAULT_WORKFLOW_EXAMPLE_DIR) -> List[LoadedWorkflowExample]:
    """Load every ``*.json`` example in ``directory``, sorted by file name."""
    directory = Path(directory)
    if not directory.is_dir():
        raise WorkflowExampleError(f"No example JSON files found in '{directory}'")
    paths = sorted(p for p in directory.iterdir() if p.is_file() and p.suffix == ".json")
    if not paths:
        raise WorkflowExampleError(f"No example JSON files found in '{directory}'")
    seen: Dict[str, Path] = {}
    loaded = []
    for path in paths:
        example = load_example(path)
        if example.id in seen:
            raise WorkflowExampleError(f"Duplicate example id '{example.id}' (found in '{path}')")
        seen[example.id] = path
        loaded.append(LoadedWorkflowExample(path=path, example=example))
    return loaded


def check_required_files(example: WorkflowExample, repo_root: PathLike = ".") -> None:
    root = Path(repo_root)
    for rel in example.required_files:
        if not (root / rel).exists():
            raise WorkflowExampleError(f"Required example file '{rel}' not found (example id '{example.id}')")


def run_example_workflow(example: WorkflowExample, repo_root: PathLike = ".") -> List[OpResult]:
    """Run ``example`` against a fresh project state."""
    with start_action(action_type="examples:run", example_id=example.id) as action:
        check_required_files(example, repo_root)
        engine = GentleEngine()
        try:
            results = engine.apply_workflow(example.workflow)
        except EngineError as e:
            raise WorkflowExampleError(f"Workflow example '{example.id}' failed: {e}")
        action.add_success_fields(result_count=len(results))
        return results


_UNSAFE_STEM = re.compile(r"[^A-Za-z0-9_-]")


def example_file_stem(example_id: str) -> str:
    return _UNSAFE_STEM.sub("_", example_id)


def render_example_markdown(loaded: LoadedWorkflowExample) -> str:
    example = loaded.example
    lines = [
        f"# {example.title}",
        "",
        f"- Example id: `{example.id}`",
        f"- Source file: `{loaded.path.as_posix()}`",
        f"- Test mode: `{example.test_mode.value}` ({example.test_mode.doc})",
    ]
    if example.required_files:
        lines.append("- Required files:")
        lines.extend(f"  - `{f}`" for f in example.required_files)
    if example.summary.strip():
        lines.extend(["", example.summary.strip()])
    workflow_json = json.dumps(example.workflow.model_dump(mode="json"), indent=2)
    lines.extend([
        "",
        "## Canonical Workflow JSON",
        "",
        "```json",
        workflow_json,
        "```",
        "",
        "## CLI",
        "",
        "```bash",
        f"gentle-cli workflow @{loaded.path.as_posix()}",
        "```",
        "",
    ])
    return "\n".join(lines)


def render_index_markdown(examples: List[LoadedWorkflowExample]) -> str:
    lines = ["# Workflow Examples", ""]
    for loaded in examples:
        example = loaded.example
        stem = example_file_stem(example.id)
        line = f"- [{example.id}](./{stem}.md) - {example.test_mode.value}"
        if example.summary.strip():
            line += f" - {example.summary.strip()}"
        lines.append(line)
    lines.append("")
    return "\n".join(lines)


def generate_example_docs(
    source_dir: PathLike = DEFAULT_WORKFLOW_EXAMPLE_DIR,
    output_dir: PathLike = DEFAULT_WORKFLOW_EXAMPLE_OUTPUT_DIR,
) -> List[Path]:
    """Write one page per example plus ``README.md``; returns the written paths."""
    examples = load_examples(source_dir)
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    written = []
    for loaded in examples:
        target = out / f"{example_file_stem(loaded.example.id)}.md"
        target.write_text(render_example_markdown(loaded), encoding="utf-8")
        written.append(target)
    index = out / "README.md"
    index.write_text(render_index_markdown(examples), encoding="utf-8")
    written.append(index)
    return written


def select_examples(
    examples: List[LoadedWorkflowExample],
    example_id: Optional[str] = None,
    online_enabled: Optional[bool] = None,
) -> List[LoadedWorkflowExample]:
    """Examples that should run now, optionally narrowed to one id."""
    if online_enabled is None:
        online_enabled = online_tests_enabled()
    if example_id is not None:
        chosen = [e for e in examples if e.example.id == example_id]
        if not chosen:
            raise WorkflowExampleError(f"Unknown example id '{example_id}'")
        return chosen
    return [e for e in examples if e.example.test_mode.should_run(online_enabled)]
