# rediver/commands/pipelines.py
"""
Pipelines Command Module
------------------------
Pipeline templates and their step graph.

  list / show / activate / deactivate / clone / delete
  steps add|update|move|delete|link|unlink|root|export|import   (load -> edit -> validate -> save)
  edit                                                          (interactive session)
"""

import shlex
from typing import Any, Dict, List, Optional

import typer
import yaml

from rediver.clients import endpoints
from rediver.clients.client_rest import ApiClientError, RestClient, build_client, get_error_message
from rediver.core.logger import log
from rediver.core.notifier import error, info, success, summary, warning
from rediver.core.output_manager import export_data
from rediver.models.pipeline import PipelineTemplate, Step
from rediver.pipelines.errors import (
    NothingToSaveError,
    PipelineBuilderError,
    PipelineLoadError,
    PipelineSaveError,
    ReadOnlyPipelineError,
    StepValidationError,
)
from rediver.pipelines.session import PipelineBuilderSession
from rediver.pipelines.validation import find_dangling_dependencies
from rediver.schemas.pipelines_schema import schema as pipelines_schema
from rediver.schemas.steps_schema import schema as steps_schema

app = typer.Typer(help="Manage pipeline templates and their steps.")
steps_app = typer.Typer(help="Edit the steps of a pipeline (each command saves immediately).")
app.add_typer(steps_app, name="steps")

BACK_HINT = "Run 'rediver pipelines list' to see available pipelines."


# ---------------------- HELPERS ---------------------- #

def _client() -> RestClient:
    try:
        return build_client()
    except (EnvironmentError, ValueError) as exc:
        error(str(exc))
        raise typer.Exit(code=1)


def _open_session(pipeline_id: str) -> PipelineBuilderSession:
    session = PipelineBuilderSession(_client(), pipeline_id)
    try:
        session.load()
    except (PipelineLoadError, EnvironmentError) as exc:
        error(str(exc))
        info(BACK_HINT)
        raise typer.Exit(code=1)
    return session


def _require_editable(session: PipelineBuilderSession):
    if session.read_only:
        error(f"Pipeline '{session.pipeline.name}' is a system template and is read-only.")
        info(f"Clone it first: rediver pipelines clone {session.pipeline_id} --name \"My copy\"")
        raise typer.Exit(code=1)


def _save(session: PipelineBuilderSession, exit_on_error: bool = True) -> bool:
    """Save and report. Returns True when the pipeline was written."""
    try:
        session.save()
    except NothingToSaveError:
        info("No changes to save.")
        return False
    except StepValidationError as exc:
        error(f"{exc.report.badge}. {exc.report.message}", exit_on_error=exit_on_error)
        return False
    except (PipelineSaveError, ReadOnlyPipelineError) as exc:
        error(f"Failed to save pipeline: {exc}", exit_on_error=exit_on_error)
        return False
    success(f"Pipeline {session.pipeline_id} saved successfully.")
    return True


def _apply(action, *args, **kwargs):
    """Run an editor mutation, turning builder errors into a CLI failure."""
    try:
        return action(*args, **kwargs)
    except (PipelineBuilderError, ValueError) as exc:
        error(str(exc))
        raise typer.Exit(code=1)


def _split_csv(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def step_row(step: Step) -> Dict[str, Any]:
    pos = step.ui_position
    return {
        "order": step.order,
        "step_key": step.step_key,
        "name": step.name,
        "tool": step.tool or "-",
        "capabilities": ", ".join(step.capabilities),
        "depends_on": ", ".join(step.depends_on),
        "timeout_seconds": step.timeout_seconds,
        "ui_position": f"{pos.x:g},{pos.y:g}" if pos else "",
        "id": step.id,
    }


def pipeline_row(p: PipelineTemplate) -> Dict[str, Any]:
    return {
        "id": p.id,
        "name": p.name,
        "version": p.version,
        "is_active": "yes" if p.is_active else "no",
        "is_system_template": "yes" if p.is_system_template else "no",
        "steps": len(p.steps),
        "triggers": ", ".join(t.type for t in p.triggers),
        "tags": ", ".join(p.tags),
        "updated_at": p.updated_at,
    }


def _render_steps(session: PipelineBuilderSession, fmt: str = "table", output: Optional[str] = None):
    editor = session.editor
    rows = [step_row(s) for s in editor.steps]
    mode = "read-only system template" if session.read_only else "editable"
    title = f"{session.pipeline.name} ({mode})"
    if not rows:
        info("Pipeline has no steps.")
    else:
        export_data(rows, schema=steps_schema, fmt=fmt, output=output, title=title)
    if fmt == "table":
        report = session.validate()
        if report.count and not session.read_only:
            warning(report.badge)
        if editor.has_changes and not session.read_only:
            warning("Unsaved changes")


# ---------------------- LIST COMMAND ---------------------- #

@app.command("list")
def list_pipelines(
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Free text search."),
    active: Optional[bool] = typer.Option(None, "--active/--inactive", help="Filter by activation state."),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma-separated tags filter."),
    page: int = typer.Option(1, "--page", "-p", help="Page number."),
    per_page: int = typer.Option(20, "--per-page", "-l", help="Items per page."),
    all_pages: bool = typer.Option(False, "--all", help="Fetch all pages."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, json."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file path."),
):
    """List pipeline templates."""
    client = _client()
    params: Dict[str, Any] = {"search": search, "tags": tags, "per_page": per_page}
    if active is not None:
        params["is_active"] = str(active).lower()

    rows = []
    total = 0
    total_pages = None
    current_page = page
    try:
        while True:
            data = client.get(endpoints.pipeline_list(), params={**params, "page": current_page}) or {}
            items = data.get("items") or []
            total = data.get("total", total)
            total_pages = data.get("total_pages")
            if not items:
                if current_page == page:
                    info("No pipelines found.")
                    raise typer.Exit()
                break
            rows.extend(pipeline_row(PipelineTemplate.from_dict(p)) for p in items)
            if not all_pages or (total_pages is not None and current_page >= total_pages):
                break
            current_page += 1
    except (ApiClientError, EnvironmentError) as exc:
        error(f"Error listing pipelines: {get_error_message(exc)}")
        raise typer.Exit(code=1)

    export_data(
        rows,
        schema=pipelines_schema,
        fmt=fmt,
        output=output,
        title=f"Pipelines - Page {page}/{total_pages or '?'}",
    )
    if fmt == "table" or output:
        summary(f"{len(rows)} pipeline(s) listed out of {total or len(rows)} total.")


# ---------------------- SHOW COMMAND ---------------------- #

@app.command("show")
def show_pipeline(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, json."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file path."),
):
    """Show a pipeline and its steps."""
    session = _open_session(pipeline_id)
    p = session.pipeline
    if fmt == "table":
        info(f"{p.name} (v{p.version}) - {'active' if p.is_active else 'inactive'}"
             f"{' - system template (clone to edit)' if p.is_system_template else ''}")
        if p.description:
            info(p.description)
        s = p.settings
        log(f"Settings: max_parallel_steps={s.max_parallel_steps} timeout={s.timeout_seconds}s "
            f"agent_preference={s.agent_preference} fail_fast={s.fail_fast}", verbose_only=True)
    _render_steps(session, fmt=fmt, output=output)


# ---------------------- LIFECYCLE COMMANDS ---------------------- #

def _post_action(pipeline_id: str, path: str, verb: str, payload: Optional[Dict[str, Any]] = None) -> Any:
    client = _client()
    try:
        data = client.post(path, payload)
    except (ApiClientError, EnvironmentError) as exc:
        error(f"Failed to {verb} pipeline {pipeline_id}: {get_error_message(exc)}")
        raise typer.Exit(code=1)
    client.invalidate(endpoints.PIPELINE_CACHE_PREFIXES)
    return data


@app.command("activate")
def activate_pipeline(pipeline_id: str = typer.Argument(..., help="Pipeline ID.")):
    """Activate a pipeline so its triggers fire."""
    _post_action(pipeline_id, endpoints.pipeline_activate(pipeline_id), "activate")
    success(f"Pipeline {pipeline_id} activated.")


@app.command("deactivate")
def deactivate_pipeline(pipeline_id: str = typer.Argument(..., help="Pipeline ID.")):
    """Deactivate a pipeline."""
    _post_action(pipeline_id, endpoints.pipeline_deactivate(pipeline_id), "deactivate")
    success(f"Pipeline {pipeline_id} deactivated.")


@app.command("clone")
def clone_pipeline(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID to clone (system templates included)."),
    name: str = typer.Option(..., "--name", "-n", help="Name of the new pipeline."),
):
    """Clone a pipeline into an editable tenant-owned copy."""
    data = _post_action(pipeline_id, endpoints.pipeline_clone(pipeline_id), "clone", {"name": name})
    new_id = (data or {}).get("id", "?") if isinstance(data, dict) else "?"
    success(f"Pipeline cloned: ID {new_id} - {name}")


@app.command("delete")
def delete_pipeline(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt."),
):
    """Delete a pipeline template."""
    if not force:
        if not typer.confirm(f"Are you sure you want to delete pipeline {pipeline_id}?"):
            info("Aborted.")
            raise typer.Exit()
    client = _client()
    try:
        client.delete(endpoints.pipeline(pipeline_id))
    except (ApiClientError, EnvironmentError) as exc:
        error(f"Error deleting pipeline {pipeline_id}: {get_error_message(exc)}")
        raise typer.Exit(code=1)
    client.invalidate(endpoints.PIPELINE_CACHE_PREFIXES)
    success(f"Pipeline {pipeline_id} deleted.")


# ---------------------- STEP COMMANDS ---------------------- #

@steps_app.command("add")
def add_step(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Scanner tool name (see 'rediver tools list')."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Step name."),
    depends_on: Optional[str] = typer.Option(None, "--depends-on", "-d", help="Comma-separated step keys/IDs."),
    x: Optional[float] = typer.Option(None, "--x", help="Canvas X position."),
    y: Optional[float] = typer.Option(None, "--y", help="Canvas Y position."),
):
    """Append a step to a pipeline."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    if tool and tool not in editor.catalog:
        warning(f"Tool '{tool}' is not in the active catalog; the step will have no capabilities.")
    position = (x, y) if x is not None and y is not None else None
    step = _apply(editor.add_step, position=position, label=name, tool_name=tool)
    for ref in _split_csv(depends_on) or []:
        source = _apply(editor.resolve, ref)
        _apply(editor.connect, source.id, step.id)
    info(f"Added step '{step.name}' ({step.step_key}) at position {step.order}.")
    _save(session)


@steps_app.command("update")
def update_step(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    step_ref: str = typer.Argument(..., help="Step ID or key."),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="New name."),
    description: Optional[str] = typer.Option(None, "--description", help="New description."),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="New tool; pass '' to unassign."),
    step_key: Optional[str] = typer.Option(None, "--key", help="New step key (references are renamed)."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Timeout in seconds."),
    depends_on: Optional[str] = typer.Option(None, "--depends-on", "-d", help="Comma-separated step keys (replaces)."),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Max retries."),
    retry_delay: Optional[int] = typer.Option(None, "--retry-delay", help="Retry delay in seconds."),
):
    """Update fields of a step. Changing the tool re-derives its capabilities."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    step = _apply(editor.resolve, step_ref)

    updates: Dict[str, Any] = {
        "name": name,
        "description": description,
        "tool": tool,
        "step_key": step_key,
        "timeout_seconds": timeout,
        "max_retries": max_retries,
        "retry_delay_seconds": retry_delay,
    }
    if depends_on is not None:
        updates["depends_on"] = [_apply(editor.resolve, ref).step_key for ref in _split_csv(depends_on)]
    updates = {k: v for k, v in updates.items() if v is not None}
    if not updates:
        warning("Nothing to update.")
        raise typer.Exit()

    step = _apply(editor.update_step, step.id, **updates)
    info(f"Updated step '{step.name}' ({step.step_key}).")
    _save(session)


@steps_app.command("move")
def move_step(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    step_ref: str = typer.Argument(..., help="Step ID or key ('start'/'end' for the markers)."),
    x: float = typer.Argument(..., help="Canvas X position."),
    y: float = typer.Argument(..., help="Canvas Y position."),
):
    """Change the canvas position of a step (or of the start/end marker)."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    if step_ref == "start":
        _apply(editor.move_start, (x, y))
    elif step_ref == "end":
        _apply(editor.move_end, (x, y))
    else:
        step = _apply(editor.resolve, step_ref)
        _apply(editor.move_step, step.id, (x, y))
    _save(session)


@steps_app.command("delete")
def delete_step(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    step_ref: str = typer.Argument(..., help="Step ID or key."),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt."),
):
    """Delete a step. Other steps stop depending on it."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    step = _apply(editor.resolve, step_ref)
    if not force:
        confirm = typer.confirm(
            f"Are you sure you want to delete step '{step.name}'? Any dependencies on this step will be removed."
        )
        if not confirm:
            info("Aborted.")
            raise typer.Exit()
    _apply(editor.delete_step, step.id)
    info(f"Step '{step.name}' deleted.")
    _save(session)


@steps_app.command("link")
def link_steps(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    source: str = typer.Argument(..., help="Step that must run first (ID or key)."),
    target: str = typer.Argument(..., help="Step that depends on it (ID or key)."),
):
    """Make TARGET depend on SOURCE."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    _apply(editor.connect, _apply(editor.resolve, source).id, _apply(editor.resolve, target).id)
    _save(session)


@steps_app.command("unlink")
def unlink_steps(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    source: str = typer.Argument(..., help="Prerequisite step (ID or key)."),
    target: str = typer.Argument(..., help="Dependent step (ID or key)."),
):
    """Remove the dependency of TARGET on SOURCE."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    _apply(editor.disconnect, _apply(editor.resolve, source).id, _apply(editor.resolve, target).id)
    _save(session)


@steps_app.command("root")
def root_step(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    step_ref: str = typer.Argument(..., help="Step ID or key."),
):
    """Clear all dependencies of a step so it starts the pipeline."""
    session = _open_session(pipeline_id)
    _require_editable(session)
    editor = session.editor
    _apply(editor.make_root, _apply(editor.resolve, step_ref).id)
    _save(session)


@steps_app.command("export")
def export_steps(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="YAML file (stdout if omitted)."),
):
    """Export the step list as YAML."""
    session = _open_session(pipeline_id)
    document = {
        "pipeline": session.pipeline_id,
        "name": session.pipeline.name,
        "steps": [s.to_dict() for s in session.editor.steps],
    }
    text = yaml.safe_dump(document, sort_keys=False, allow_unicode=True)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(text)
        success(f"{len(document['steps'])} step(s) exported to {output}")
    else:
        typer.echo(text)


def load_steps_file(path: str) -> List[Step]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get("steps")
    if not isinstance(data, list):
        raise ValueError("Expected a YAML list of steps or a mapping with a 'steps' list")
    steps = []
    for index, raw in enumerate(data, start=1):
        if not isinstance(raw, dict) or not raw.get("step_key"):
            raise ValueError(f"Step #{index} must be a mapping with a 'step_key'")
        steps.append(Step.from_dict(raw))
    return steps


@steps_app.command("import")
def import_steps(
    pipeline_id: str = typer.Argument(..., help="Pipeline ID."),
    file: str = typer.Option(..., "--file", "-f", help="YAML file produced by 'steps export' (or compatible)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Validate only; do not save."),
):
    """Replace the whole step list from a YAML file."""
    try:
        steps = load_steps_file(file)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        error(f"Cannot read {file}: {exc}")
        raise typer.Exit(code=1)

    dangling = find_dangling_dependencies(steps)
    if dangling:
        for step, key in dangling:
            error(f"Step '{step.step_key}' depends on unknown step '{key}'")
        raise typer.Exit(code=1)

    session = _open_session(pipeline_id)
    _require_editable(session)
    _apply(session.editor.set_steps, steps)
    report = session.validate()
    if dry_run:
        if report.is_valid:
            success(f"[dry-run] {len(steps)} step(s) are valid.")
        else:
            error(f"[dry-run] {report.badge}. {report.message}", exit_on_error=True)
        return
    _save(session)


@steps_app.command("validate")
def validate_pipeline(pipeline_id: str = typer.Argument(..., help="Pipeline ID.")):
    """Report steps that would block a save."""
    session = _open_session(pipeline_id)
    report = session.validate()
    if report.is_valid:
        success("All steps have a scanner.")
        return
    error(f"{report.badge}. {report.message}", exit_on_error=True)


# ---------------------- INTERACTIVE EDITOR ---------------------- #

EDIT_HELP = """Commands:
  show                                  list steps
  add tool=<name> [name=<label>] [x=<n> y=<n>]
  set <step> field=value ...            fields: name, description, tool, key, timeout, depends_on, max_retries, retry_delay
  move <step|start|end> <x> <y>
  rm <step>                             delete (asks for confirmation)
  link <source> <target>                target depends on source
  unlink <source> <target>
  root <step>                           clear dependencies
  validate | save | discard | quit"""

READ_ONLY_COMMANDS = {"show", "validate", "help", "quit", "exit"}

FIELD_ALIASES = {
    "key": "step_key",
    "timeout": "timeout_seconds",
    "retry_delay": "retry_delay_seconds",
}
INT_FIELDS = {"timeout_seconds", "max_retries", "retry_delay_seconds"}


def parse_assignments(tokens: List[str]) -> Dict[str, str]:
    """['tool=nmap', 'name=Port scan'] -> {'tool': 'nmap', 'name': 'Port scan'}"""
    out: Dict[str, str] = {}
    for token in tokens:
        if "=" not in token:
            raise ValueError(f"Invalid argument '{token}' (expected key=value)")
        key, value = token.split("=", 1)
        out[key.strip()] = value.strip()
    return out


def coerce_updates(editor, raw: Dict[str, str]) -> Dict[str, Any]:
    updates: Dict[str, Any] = {}
    for key, value in raw.items():
        field = FIELD_ALIASES.get(key, key)
        if field in INT_FIELDS:
            updates[field] = int(value)
        elif field == "depends_on":
            updates[field] = [editor.resolve(ref).step_key for ref in _split_csv(value)]
        else:
            updates[field] = value
    return updates


def run_edit_command(session: PipelineBuilderSession, line: str, confirm=typer.confirm) -> bool:
    """Execute one interactive command. Returns False when the session should end."""
    tokens = shlex.split(line)
    if not tokens:
        return True
    cmd, args = tokens[0].lower(), tokens[1:]
    editor = session.editor

    if session.read_only and cmd not in READ_ONLY_COMMANDS:
        warning("System templates are read-only. Clone the pipeline to edit it.")
        return True

    if cmd == "help":
        typer.echo(EDIT_HELP)
    elif cmd == "show":
        _render_steps(session)
    elif cmd == "validate":
        report = session.validate()
        if report.is_valid:
            success("All steps have a scanner.")
        else:
            warning(f"{report.badge}. {report.message}")
    elif cmd == "add":
        params = parse_assignments(args)
        position = None
        if "x" in params and "y" in params:
            position = (float(params["x"]), float(params["y"]))
        step = editor.add_step(position=position, label=params.get("name"), tool_name=params.get("tool"))
        info(f"Added '{step.name}' ({step.step_key}).")
    elif cmd == "set":
        if not args:
            raise ValueError("Usage: set <step> field=value ...")
        step = editor.resolve(args[0])
        editor.update_step(step.id, **coerce_updates(editor, parse_assignments(args[1:])))
        info(f"Updated '{step.name}'.")
    elif cmd == "move":
        if len(args) != 3:
            raise ValueError("Usage: move <step|start|end> <x> <y>")
        position = (float(args[1]), float(args[2]))
        if args[0] == "start":
            editor.move_start(position)
        elif args[0] == "end":
            editor.move_end(position)
        else:
            editor.move_step(editor.resolve(args[0]).id, position)
    elif cmd == "rm":
        if len(args) != 1:
            raise ValueError("Usage: rm <step>")
        step = editor.resolve(args[0])
        if confirm(f"Delete step '{step.name}'? Any dependencies on this step will be removed."):
            editor.delete_step(step.id)
            info("Step deleted.")
    elif cmd in ("link", "unlink"):
        if len(args) != 2:
            raise ValueError(f"Usage: {cmd} <source> <target>")
        source, target = editor.resolve(args[0]), editor.resolve(args[1])
        (editor.connect if cmd == "link" else editor.disconnect)(source.id, target.id)
    elif cmd == "root":
        if len(args) != 1:
            raise ValueError("Usage: root <step>")
        editor.make_root(editor.resolve(args[0]).id)
    elif cmd == "save":
        _save(session, exit_on_error=False)
    elif cmd == "discard":
        if not session.has_changes or confirm("Discard all unsaved changes?"):
            session.discard()
            info("Changes discarded; pipeline reloaded.")
    elif cmd in ("quit", "exit"):
        return not session.request_leave(confirm)
    else:
        warning(f"Unknown command '{cmd}'. Type 'help' for the list of commands.")
    return True


@app.command("edit")
def edit_pipeline(pipeline_id: str = typer.Argument(..., help="Pipeline ID.")):
    """Interactive step editor. Changes are kept in memory until 'save'."""
    session = _open_session(pipeline_id)
    if session.read_only:
        warning("Read-only view - clone this system template to edit it.")
    _render_steps(session)
    typer.echo("Type 'help' for commands.")

    running = True
    while running:
        marker = "*" if session.has_changes else ""
        try:
            line = typer.prompt(f"{session.pipeline.name}{marker}", prompt_suffix="> ", default="", show_default=False)
        except typer.Abort:
            line = "quit"
        try:
            running = run_edit_command(session, line)
        except (PipelineBuilderError, ValueError) as exc:
            # A failed discard keeps the current in-memory copy
            error(str(exc))
