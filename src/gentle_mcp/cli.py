"""
Direct command line access to the GENtle engine.

Every mutating command loads the project state, applies through the engine
and writes the state back only if the engine call succeeded.
"""

import json
from pathlib import Path
from typing import Any, List, Optional

import typer

from gentle_mcp.config import ServerSettings, configure_logging
from gentle_mcp.engine import GentleEngine
from gentle_mcp.errors import EngineError, PayloadError
from gentle_mcp.lineage_export import export_lineage_json
from gentle_mcp.operations import parse_operation, parse_workflow
from gentle_mcp.shell_docs import (
    HelpError,
    help_json,
    help_markdown,
    help_text,
    parse_help_format,
    topic_help_json,
    topic_help_markdown,
    topic_help_text,
)
from gentle_mcp.state import ProjectState, load_state
from gentle_mcp.workflow_examples import (
    DEFAULT_WORKFLOW_EXAMPLE_DIR,
    DEFAULT_WORKFLOW_EXAMPLE_OUTPUT_DIR,
    WorkflowExampleError,
    generate_example_docs,
    load_examples,
    run_example_workflow,
    select_examples,
)

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help=(
        "GENtle project engine from the command line.\n\n"
        "\b\nTypical workflow:\n"
        "  gentle-cli op '{\"LoadSequence\": {\"sequence\": \"ATGC\", \"as_id\": \"x\"}}'\n"
        "  gentle-cli workflow @docs/examples/workflows/digest_ecori_arrangement.json\n"
        "  gentle-cli state-summary\n"
    ),
)
examples_app = typer.Typer(add_completion=False, no_args_is_help=True, help="Canonical workflow examples.")
app.add_typer(examples_app, name="examples")


@app.callback()
def _root(
    ctx: typer.Context,
    state: Optional[str] = typer.Option(
        None, "--state", "--project", help="Project state file (default: $GENTLE_STATE_PATH or .gentle_state.json)."
    ),
):
    settings = ServerSettings.from_env()
    configure_logging(settings)
    ctx.obj = {"state_path": state or settings.state_path}


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


def _echo_json(value: Any) -> None:
    typer.echo(json.dumps(value, indent=2))


def _read_payload(raw: str) -> Any:
    """Inline JSON, or ``@PATH`` for a JSON file."""
    text = raw
    if raw.startswith("@"):
        try:
            text = Path(raw[1:]).read_text(encoding="utf-8")
        except OSError as e:
            _fail(f"Could not read payload file '{raw[1:]}': {e}")
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        _fail(f"Could not parse JSON payload: {e}")


def _state_path(ctx: typer.Context) -> str:
    return ctx.obj["state_path"]


def _load(ctx: typer.Context) -> ProjectState:
    state_path = _state_path(ctx)
    try:
        return load_state(state_path)
    except EngineError as e:
        _fail(f"Could not load state from '{state_path}': {e}")


@app.command("capabilities", help="Print the engine capability descriptor.")
def capabilities():
    _echo_json(GentleEngine.capabilities().model_dump(mode="json"))


@app.command("state-summary", help="Print a deterministic summary of the project state.")
def state_summary(ctx: typer.Context):
    engine = GentleEngine.from_state(_load(ctx))
    _echo_json(engine.summarize_state().model_dump(mode="json"))


@app.command("op", help="Apply one operation (inline JSON or @FILE) and persist the state.")
def op(ctx: typer.Context, payload: str = typer.Argument(..., help="Operation JSON or @FILE")):
    raw = _read_payload(payload)
    try:
        operation = parse_operation(raw)
    except PayloadError as e:
        _fail(f"Could not parse operation payload: {e}")
    engine = GentleEngine.from_state(_load(ctx))
    try:
        result = engine.apply(operation)
        engine.state.save_to_path(_state_path(ctx))
    except EngineError as e:
        _fail(str(e))
    _echo_json(result.model_dump(mode="json"))


@app.command("workflow", help="Apply a workflow (inline JSON or @FILE) and persist the state.")
def workflow(ctx: typer.Context, payload: str = typer.Argument(..., help="Workflow JSON or @FILE")):
    raw = _read_payload(payload)
    # example files wrap the workflow with metadata
    if isinstance(raw, dict) and "workflow" in raw and "ops" not in raw:
        raw = raw["workflow"]
    try:
        wf = parse_workflow(raw)
    except PayloadError as e:
        _fail(f"Could not parse workflow payload: {e}")
    engine = GentleEngine.from_state(_load(ctx))
    try:
        results = engine.apply_workflow(wf)
        engine.state.save_to_path(_state_path(ctx))
    except EngineError as e:
        _fail(str(e))
    _echo_json([r.model_dump(mode="json") for r in results])


@app.command("export-state", help="Write the current project state to PATH.")
def export_state(ctx: typer.Context, path: str = typer.Argument(...)):
    state = _load(ctx)
    try:
        state.save_to_path(path)
    except EngineError as e:
        _fail(str(e))
    typer.echo(f"Exported state to '{path}'")


@app.command("import-state", help="Replace the current project state with the state stored at PATH.")
def import_state(ctx: typer.Context, path: str = typer.Argument(...)):
    try:
        state = ProjectState.load_from_path(path)
        GentleEngine.from_state(state).state.save_to_path(_state_path(ctx))
    except EngineError as e:
        _fail(str(e))
    typer.echo(f"Imported state from '{path}' into '{_state_path(ctx)}'")


@app.command("lineage", help="Export the lineage graph as JSON.")
def lineage(ctx: typer.Context, output: Optional[str] = typer.Option(None, "--output", "-o", help="Write to PATH instead of stdout")):
    engine = GentleEngine.from_state(_load(ctx))
    try:
        text = export_lineage_json(engine.state)
    except EngineError as e:
        _fail(str(e))
    if output is None:
        typer.echo(text)
        return
    try:
        Path(output).write_text(text, encoding="utf-8")
    except OSError as e:
        _fail(f"Could not write lineage export '{output}': {e}")
    typer.echo(f"Wrote lineage export to '{output}'")


@app.command("help", help="Show command reference from the glossary.")
def help_command(
    topic: Optional[List[str]] = typer.Argument(None, help="Command path, e.g. 'examples run'"),
    format: str = typer.Option("text", "--format", help="text|json|markdown (md)"),
    interface: Optional[str] = typer.Option(None, "--interface", help="all|cli-direct|cli-shell|gui-shell|js|lua|mcp"),
):
    tokens = [t for t in (topic or []) if t.strip()]
    try:
        fmt = parse_help_format(format)
        if fmt == "json":
            _echo_json(topic_help_json(tokens, interface) if tokens else help_json(interface))
        elif fmt == "markdown":
            typer.echo(topic_help_markdown(tokens, interface) if tokens else help_markdown(interface))
        else:
            typer.echo(topic_help_text(tokens, interface) if tokens else help_text(interface))
    except HelpError as e:
        _fail(str(e))


@examples_app.command("check", help="Validate every example file in DIR.")
def examples_check(directory: str = typer.Option(DEFAULT_WORKFLOW_EXAMPLE_DIR, "--dir")):
    try:
        examples = load_examples(directory)
    except WorkflowExampleError as e:
        _fail(str(e))
    typer.echo(f"Validated {len(examples)} workflow example(s) in '{directory}'")


@examples_app.command("run", help="Run examples against a fresh project state.")
def examples_run(
    directory: str = typer.Option(DEFAULT_WORKFLOW_EXAMPLE_DIR, "--dir"),
    example_id: Optional[str] = typer.Option(None, "--id", help="Run only this example"),
):
    try:
        chosen = select_examples(load_examples(directory), example_id)
        for loaded in chosen:
            results = run_example_workflow(loaded.example)
            typer.echo(f"{loaded.example.id}: {len(results)} operation(s) applied")
    except WorkflowExampleError as e:
        _fail(str(e))


@examples_app.command("docs", help="Render Markdown pages for every example.")
def examples_docs(
    directory: str = typer.Option(DEFAULT_WORKFLOW_EXAMPLE_DIR, "--dir"),
    output: str = typer.Option(DEFAULT_WORKFLOW_EXAMPLE_OUTPUT_DIR, "--output"),
):
    try:
        written = generate_example_docs(directory, output)
    except WorkflowExampleError as e:
        _fail(str(e))
    typer.echo(f"Wrote {len(written)} file(s) to '{output}'")
