# rediver/pipelines/editor.py
"""
Step Graph Editor
-----------------
In-memory list of steps for one pipeline template, with mutations that keep
the dependency graph consistent:

  - every depends_on entry names a step_key present in the list
  - order is always 1..N, matching list position
  - capabilities always follow the assigned tool (empty when no tool)
  - system templates cannot be mutated

Every mutation sets `has_changes`; only a save or a discard clears it.
"""

import copy
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from rediver.core.ids import generate_step_key, generate_temp_step_id
from rediver.core.logger import log
from rediver.models.pipeline import DEFAULT_STEP_TIMEOUT, Step, UIPosition
from rediver.models.tool import ToolCatalog
from rediver.pipelines.errors import (
    DependencyCycleError,
    DuplicateStepKeyError,
    PipelineBuilderError,
    ReadOnlyPipelineError,
    StepNotFoundError,
    UnknownStepFieldError,
)

PositionLike = Union[UIPosition, Dict[str, Any], tuple, list]

# Fields a caller may change through update_step. id and order are owned by the editor.
EDITABLE_FIELDS = {
    "step_key",
    "name",
    "description",
    "ui_position",
    "node_type",
    "tool",
    "capabilities",
    "config",
    "timeout_seconds",
    "depends_on",
    "condition",
    "max_retries",
    "retry_delay_seconds",
}


def to_position(value: Optional[PositionLike]) -> Optional[UIPosition]:
    if value is None or isinstance(value, UIPosition):
        return value
    if isinstance(value, dict):
        return UIPosition(x=float(value["x"]), y=float(value["y"]))
    x, y = value
    return UIPosition(x=float(x), y=float(y))


class StepGraphEditor:
    def __init__(self, catalog: Optional[ToolCatalog] = None, read_only: bool = False):
        self.catalog = catalog or ToolCatalog()
        self.read_only = read_only
        self.steps: List[Step] = []
        self.start_position: Optional[UIPosition] = None
        self.end_position: Optional[UIPosition] = None
        self.has_changes = False

    # ---------------------- LOOKUP ---------------------- #

    def get_step(self, step_id: str) -> Step:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise StepNotFoundError(step_id)

    def find_by_key(self, step_key: str) -> Optional[Step]:
        for step in self.steps:
            if step.step_key == step_key:
                return step
        return None

    def resolve(self, ref: str) -> Step:
        """Look a step up by id, falling back to step_key."""
        for step in self.steps:
            if step.id == ref:
                return step
        step = self.find_by_key(ref)
        if step is None:
            raise StepNotFoundError(ref)
        return step

    def keys(self) -> Set[str]:
        return {s.step_key for s in self.steps}

    # ---------------------- INTERNALS ---------------------- #

    def _ensure_editable(self):
        if self.read_only:
            raise ReadOnlyPipelineError()

    def _touch(self):
        self.has_changes = True

    def _renumber(self):
        for index, step in enumerate(self.steps, start=1):
            step.order = index

    def _depends_transitively(self, step_key: str, target_key: str) -> bool:
        """True if step_key (directly or not) depends on target_key."""
        by_key = {s.step_key: s for s in self.steps}
        stack = [step_key]
        seen: Set[str] = set()
        while stack:
            key = stack.pop()
            if key == target_key:
                return True
            if key in seen:
                continue
            seen.add(key)
            step = by_key.get(key)
            if step:
                stack.extend(step.depends_on)
        return False

    def _check_dependencies(self, step: Step, depends_on: Iterable[str]) -> List[str]:
        deps: List[str] = []
        keys = self.keys()
        for key in depends_on:
            if key == step.step_key:
                raise DependencyCycleError(key, key)
            if key not in keys:
                raise StepNotFoundError(key)
            if self._depends_transitively(key, step.step_key):
                raise DependencyCycleError(key, step.step_key)
            if key not in deps:
                deps.append(key)
        return deps

    # ---------------------- MUTATIONS ---------------------- #

    def add_step(
        self,
        node_type: str = "scanner",
        position: Optional[PositionLike] = None,
        label: Optional[str] = None,
        tool_name: Optional[str] = None,
    ) -> Step:
        self._ensure_editable()
        name = label or f"New {node_type[:1].upper()}{node_type[1:]}"
        step = Step(
            id=generate_temp_step_id(),
            step_key=generate_step_key(tool_name or name),
            name=name,
            description="",
            order=len(self.steps) + 1,
            ui_position=to_position(position),
            node_type="scanner",
            tool=tool_name or "",
            capabilities=self.catalog.capabilities_for(tool_name) if tool_name else [],
            timeout_seconds=DEFAULT_STEP_TIMEOUT,
            depends_on=[],
            max_retries=0,
            retry_delay_seconds=0,
        )
        self.steps.append(step)
        self._touch()
        log(f"Added step {step.step_key} ({step.id})", verbose_only=True)
        return step

    def update_step(self, step_id: str, **updates: Any) -> Step:
        self._ensure_editable()
        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise UnknownStepFieldError(unknown)
        step = self.get_step(step_id)

        # Capabilities are derived from the tool, never taken from the caller.
        updates.pop("capabilities", None)
        new_key = updates.pop("step_key", step.step_key)
        if new_key != step.step_key:
            self._check_new_key(new_key)
        if "depends_on" in updates:
            updates["depends_on"] = self._check_dependencies(step, updates["depends_on"] or [])
        if "ui_position" in updates:
            updates["ui_position"] = to_position(updates["ui_position"])
        if new_key != step.step_key:
            self._rename_key(step, new_key)

        tool_changed = "tool" in updates and updates["tool"] != step.tool
        for name, value in updates.items():
            setattr(step, name, value)

        if "tool" in updates and not updates["tool"]:
            step.tool = ""
            step.capabilities = []
        elif tool_changed:
            step.capabilities = self.catalog.capabilities_for(step.tool)

        self._touch()
        return step

    def _check_new_key(self, new_key: str):
        if not new_key:
            raise ValueError("step_key cannot be empty")
        if self.find_by_key(new_key) is not None:
            raise DuplicateStepKeyError(new_key)

    def _rename_key(self, step: Step, new_key: str):
        """Rename a step_key and every depends_on reference to it."""
        old_key = step.step_key
        for other in self.steps:
            other.depends_on = [new_key if d == old_key else d for d in other.depends_on]
        step.step_key = new_key

    def move_step(self, step_id: str, position: PositionLike) -> Step:
        self._ensure_editable()
        step = self.get_step(step_id)
        step.ui_position = to_position(position)
        self._touch()
        return step

    def move_start(self, position: PositionLike):
        self._ensure_editable()
        self.start_position = to_position(position)
        self._touch()

    def move_end(self, position: PositionLike):
        self._ensure_editable()
        self.end_position = to_position(position)
        self._touch()

    def delete_step(self, step_id: str) -> Step:
        """Remove a step, drop it from every depends_on and renumber order."""
        self._ensure_editable()
        removed = self.get_step(step_id)
        self.steps = [s for s in self.steps if s.id != step_id]
        for step in self.steps:
            step.depends_on = [d for d in step.depends_on if d != removed.step_key]
        self._renumber()
        self._touch()
        log(f"Deleted step {removed.step_key}", verbose_only=True)
        return removed

    def connect(self, source_id: str, target_id: str) -> Step:
        """Make target depend on source."""
        self._ensure_editable()
        source = self.get_step(source_id)
        target = self.get_step(target_id)
        if source.step_key in target.depends_on:
            return target
        self._check_dependencies(target, [source.step_key])
        target.depends_on = target.depends_on + [source.step_key]
        self._touch()
        return target

    def disconnect(self, source_id: str, target_id: str) -> Step:
        self._ensure_editable()
        source = self.get_step(source_id)
        target = self.get_step(target_id)
        if source.step_key in target.depends_on:
            target.depends_on = [d for d in target.depends_on if d != source.step_key]
            self._touch()
        return target

    def make_root(self, step_id: str) -> Step:
        """Drop all dependencies so the step runs first."""
        self._ensure_editable()
        step = self.get_step(step_id)
        if step.depends_on:
            step.depends_on = []
            self._touch()
        return step

    def set_steps(self, steps: List[Step]) -> List[Step]:
        """
        Replace the whole list as a user edit (e.g. an imported file).
        Order is renumbered, capabilities re-derived and dependencies checked.
        """
        self._ensure_editable()
        incoming = [copy.deepcopy(s) for s in steps]
        seen: Set[str] = set()
        for step in incoming:
            if step.step_key in seen:
                raise DuplicateStepKeyError(step.step_key)
            seen.add(step.step_key)
            if not step.id:
                step.id = generate_temp_step_id()
            step.capabilities = self.catalog.capabilities_for(step.tool) if step.tool else []

        previous = self.steps
        wanted = [list(s.depends_on) for s in incoming]
        for step in incoming:
            step.depends_on = []
        self.steps = incoming
        try:
            for step, deps in zip(incoming, wanted):
                step.depends_on = self._check_dependencies(step, deps)
        except PipelineBuilderError:
            self.steps = previous
            raise
        self._renumber()
        self._touch()
        return self.steps

    # ---------------------- HYDRATION / DIRTY STATE ---------------------- #

    def replace_steps(
        self,
        steps: List[Step],
        start_position: Optional[PositionLike] = None,
        end_position: Optional[PositionLike] = None,
    ):
        """
        Hydrate from server state. Not a user edit: allowed on read-only pipelines, clears the dirty flag.
        The editor works on its own copies; server order values are normalised to 1..N.
        """
        self.steps = [copy.deepcopy(s) for s in sorted(steps, key=lambda s: s.order)]
        self._renumber()
        self.start_position = to_position(start_position)
        self.end_position = to_position(end_position)
        self.has_changes = False

    def mark_clean(self):
        self.has_changes = False
