import pytest

from conftest import make_step
from rediver.core.ids import is_temp_id
from rediver.models.pipeline import DEFAULT_STEP_TIMEOUT, UIPosition
from rediver.pipelines.editor import StepGraphEditor
from rediver.pipelines.errors import (
    DependencyCycleError,
    DuplicateStepKeyError,
    ReadOnlyPipelineError,
    StepNotFoundError,
    UnknownStepFieldError,
)


def orders(editor):
    return [s.order for s in editor.steps]


# ---------------------- add_step ---------------------- #

def test_add_step_to_empty_pipeline(catalog):
    editor = StepGraphEditor(catalog)
    step = editor.add_step(position=(200, 120))

    assert step.name == "New Scanner"
    assert step.node_type == "scanner"
    assert step.order == 1
    assert step.tool == ""
    assert step.capabilities == []
    assert step.depends_on == []
    assert step.timeout_seconds == DEFAULT_STEP_TIMEOUT
    assert step.ui_position == UIPosition(200.0, 120.0)
    assert is_temp_id(step.id)
    assert len(step.id) == len("temp-") + 12
    assert step.step_key.startswith("new-scanner-")
    assert editor.has_changes is True


def test_add_step_with_tool_derives_capabilities_and_key(catalog):
    editor = StepGraphEditor(catalog)
    step = editor.add_step(tool_name="nuclei", label="Vulns")

    assert step.tool == "nuclei"
    assert step.capabilities == ["vuln_scan"]
    assert step.step_key.startswith("nuclei-")
    assert len(step.step_key) == len("nuclei-") + 8


def test_add_step_non_scanner_type_is_stored_as_scanner(catalog):
    editor = StepGraphEditor(catalog)
    step = editor.add_step(node_type="notification")
    assert step.name == "New Notification"
    assert step.node_type == "scanner"


def test_add_step_appends_with_next_order(editor):
    step = editor.add_step()
    assert step.order == 4
    assert orders(editor) == [1, 2, 3, 4]


def test_added_steps_get_unique_ids_and_keys(catalog):
    editor = StepGraphEditor(catalog)
    steps = [editor.add_step() for _ in range(20)]
    assert len({s.id for s in steps}) == 20
    assert len({s.step_key for s in steps}) == 20


# ---------------------- update_step ---------------------- #

def test_update_tool_rederives_capabilities(editor):
    step = editor.update_step("s1", tool="nuclei")
    assert step.tool == "nuclei"
    assert step.capabilities == ["vuln_scan"]
    assert editor.has_changes


def test_update_tool_to_empty_clears_capabilities(editor):
    step = editor.update_step("s1", tool="")
    assert step.tool == ""
    assert step.capabilities == []


def test_clearing_tool_resets_server_capabilities(catalog):
    editor = StepGraphEditor(catalog)
    editor.replace_steps([make_step("s1", "a", tool="", capabilities=["recon"])])
    step = editor.update_step("s1", tool=None, capabilities=["recon"])
    assert step.tool == ""
    assert step.capabilities == []


def test_update_same_tool_keeps_capabilities(editor):
    editor.get_step("s1").capabilities = ["port_scan", "extra"]
    step = editor.update_step("s1", tool="nmap")
    assert step.capabilities == ["port_scan", "extra"]


def test_update_tool_unknown_to_catalog_has_no_capabilities(editor):
    step = editor.update_step("s1", tool="zap")
    assert step.tool == "zap"
    assert step.capabilities == []


def test_update_ignores_caller_capabilities(editor):
    step = editor.update_step("s1", capabilities=["anything"], name="Renamed")
    assert step.capabilities == ["port_scan"]
    assert step.name == "Renamed"


def test_update_unknown_field_is_rejected(editor):
    with pytest.raises(UnknownStepFieldError):
        editor.update_step("s1", bogus=1)
    with pytest.raises(UnknownStepFieldError):
        editor.update_step("s1", order=9)
    assert editor.has_changes is False


def test_update_missing_step(editor):
    with pytest.raises(StepNotFoundError):
        editor.update_step("nope", name="x")


def test_update_step_key_renames_references(editor):
    editor.update_step("s1", step_key="ports")
    assert editor.get_step("s1").step_key == "ports"
    assert editor.get_step("s2").depends_on == ["ports"]


def test_update_step_key_duplicate_is_rejected(editor):
    with pytest.raises(DuplicateStepKeyError):
        editor.update_step("s1", step_key="b")
    assert editor.get_step("s1").step_key == "a"


def test_update_depends_on_cycle_is_rejected_without_mutation(editor):
    with pytest.raises(DependencyCycleError):
        editor.update_step("s1", depends_on=["c"], name="changed")
    step = editor.get_step("s1")
    assert step.depends_on == []
    assert step.name == "Step A"


def test_update_depends_on_unknown_key(editor):
    with pytest.raises(StepNotFoundError):
        editor.update_step("s3", depends_on=["zzz"])


def test_update_depends_on_deduplicates(editor):
    step = editor.update_step("s3", depends_on=["a", "b", "a"])
    assert step.depends_on == ["a", "b"]


def test_update_position_accepts_dict(editor):
    step = editor.update_step("s2", ui_position={"x": 1, "y": 2})
    assert step.ui_position == UIPosition(1.0, 2.0)


# ---------------------- delete_step ---------------------- #

def test_delete_middle_step_strips_dependencies_and_renumbers(editor):
    removed = editor.delete_step("s2")

    assert removed.step_key == "b"
    assert [s.id for s in editor.steps] == ["s1", "s3"]
    assert orders(editor) == [1, 2]
    assert editor.get_step("s3").depends_on == []
    assert editor.has_changes


def test_delete_step_referenced_by_many(catalog):
    editor = StepGraphEditor(catalog)
    editor.replace_steps([
        make_step("s1", "a"),
        make_step("s2", "b", depends_on=["a"]),
        make_step("s3", "c", depends_on=["a", "b"]),
    ])
    editor.delete_step("s1")
    assert all("a" not in s.depends_on for s in editor.steps)
    assert editor.get_step("s3").depends_on == ["b"]


def test_delete_missing_step(editor):
    with pytest.raises(StepNotFoundError):
        editor.delete_step("nope")
    assert len(editor.steps) == 3


# ---------------------- connections ---------------------- #

def test_connect_adds_dependency(editor):
    target = editor.connect("s1", "s3")
    assert target.depends_on == ["b", "a"]


def test_connect_existing_edge_is_noop(editor):
    editor.connect("s1", "s2")
    assert editor.get_step("s2").depends_on == ["a"]
    assert editor.has_changes is False


def test_connect_rejects_cycle_and_self(editor):
    with pytest.raises(DependencyCycleError):
        editor.connect("s3", "s1")
    with pytest.raises(DependencyCycleError):
        editor.connect("s1", "s1")


def test_disconnect_and_make_root(editor):
    editor.disconnect("s2", "s3")
    assert editor.get_step("s3").depends_on == []
    editor.make_root("s2")
    assert editor.get_step("s2").depends_on == []


def test_resolve_by_id_or_key(editor):
    assert editor.resolve("s2").step_key == "b"
    assert editor.resolve("c").id == "s3"
    with pytest.raises(StepNotFoundError):
        editor.resolve("missing")


# ---------------------- positions ---------------------- #

def test_move_step_and_markers(editor):
    editor.move_step("s1", (10, 20))
    editor.move_start({"x": 1, "y": 2})
    editor.move_end(UIPosition(3, 4))
    assert editor.get_step("s1").ui_position == UIPosition(10.0, 20.0)
    assert editor.start_position == UIPosition(1.0, 2.0)
    assert editor.end_position == UIPosition(3, 4)
    assert editor.has_changes


# ---------------------- set_steps ---------------------- #

def test_set_steps_renumbers_and_rederives(editor):
    incoming = [
        make_step("", "x", tool="nuclei", capabilities=["wrong"]),
        make_step("s9", "y", tool="", capabilities=["kept?"], depends_on=["x"]),
    ]
    incoming[0].order = 7
    steps = editor.set_steps(incoming)

    assert [s.order for s in steps] == [1, 2]
    assert is_temp_id(steps[0].id)
    assert steps[0].capabilities == ["vuln_scan"]
    assert steps[1].capabilities == []
    assert steps[1].depends_on == ["x"]
    # caller's objects are untouched
    assert incoming[0].order == 7


def test_set_steps_rolls_back_on_cycle(editor):
    incoming = [
        make_step("n1", "x", depends_on=["y"]),
        make_step("n2", "y", depends_on=["x"]),
    ]
    with pytest.raises(DependencyCycleError):
        editor.set_steps(incoming)
    assert [s.id for s in editor.steps] == ["s1", "s2", "s3"]


def test_set_steps_duplicate_keys(editor):
    with pytest.raises(DuplicateStepKeyError):
        editor.set_steps([make_step("n1", "x"), make_step("n2", "x")])


# ---------------------- read-only / dirty state ---------------------- #

def test_read_only_editor_rejects_every_mutation(catalog):
    editor = StepGraphEditor(catalog, read_only=True)
    editor.replace_steps([make_step("s1", "a"), make_step("s2", "b")])

    for action in (
        lambda: editor.add_step(),
        lambda: editor.update_step("s1", name="x"),
        lambda: editor.delete_step("s1"),
        lambda: editor.move_step("s1", (0, 0)),
        lambda: editor.move_start((0, 0)),
        lambda: editor.connect("s1", "s2"),
        lambda: editor.disconnect("s1", "s2"),
        lambda: editor.make_root("s2"),
        lambda: editor.set_steps([]),
    ):
        with pytest.raises(ReadOnlyPipelineError):
            action()
    assert len(editor.steps) == 2
    assert editor.has_changes is False


def test_replace_steps_clears_dirty_flag(editor):
    editor.add_step()
    assert editor.has_changes
    editor.replace_steps([make_step("s1", "a")], (50, 150), {"x": 500, "y": 150})
    assert editor.has_changes is False
    assert editor.start_position == UIPosition(50.0, 150.0)


def test_hydration_normalises_server_order(catalog):
    editor = StepGraphEditor(catalog)
    first, second = make_step("s1", "a"), make_step("s2", "b", depends_on=["a"])
    first.order, second.order = 1, 3
    editor.replace_steps([second, first])

    assert [s.id for s in editor.steps] == ["s1", "s2"]
    assert orders(editor) == [1, 2]
    assert editor.has_changes is False

    editor.add_step(tool_name="nmap")
    assert orders(editor) == [1, 2, 3]


def test_hydration_copies_steps(catalog):
    source = make_step("s1", "a")
    editor = StepGraphEditor(catalog)
    editor.replace_steps([source])

    editor.update_step("s1", name="Renamed")
    assert source.name == "a"
