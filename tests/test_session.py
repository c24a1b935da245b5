import pytest

from rediver.clients import endpoints
from rediver.clients.client_rest import ApiClientError
from rediver.core.ids import is_temp_id
from rediver.pipelines.errors import (
    NothingToSaveError,
    PipelineLoadError,
    PipelineSaveError,
    ReadOnlyPipelineError,
    SaveInProgressError,
    StepValidationError,
)
from rediver.pipelines.session import UNSAVED_CHANGES_PROMPT, PipelineBuilderSession


@pytest.fixture
def session(fake_client):
    s = PipelineBuilderSession(fake_client, "pipe-1")
    s.load()
    return s


# ---------------------- load ---------------------- #

def test_load_hydrates_editor_and_catalog(session, fake_client):
    assert session.is_loaded
    assert session.pipeline.name == "External Recon"
    assert [s.step_key for s in session.editor.steps] == ["nmap-aaaaaaaa", "nuclei-bbbbbbbb"]
    assert session.has_changes is False
    # disabled tools are filtered out of the catalog
    assert sorted(session.catalog.names()) == ["nmap", "nuclei"]
    fake_client.get.assert_any_call(endpoints.pipeline("pipe-1"), use_cache=False, retry=False)


def test_load_fills_missing_positions(fake_client, pipeline_data):
    for step in pipeline_data["steps"]:
        step.pop("ui_position")
    pipeline_data.pop("ui_start_position")
    pipeline_data.pop("ui_end_position")
    session = PipelineBuilderSession(fake_client, "pipe-1")
    session.load()

    assert all(s.ui_position is not None for s in session.editor.steps)
    assert session.editor.start_position.x == 50.0
    assert session.editor.end_position is not None
    assert session.has_changes is False


def test_load_not_found(fake_client):
    fake_client.get.side_effect = ApiClientError("Pipeline not found", "NOT_FOUND", 404)
    session = PipelineBuilderSession(fake_client, "missing")
    with pytest.raises(PipelineLoadError) as exc_info:
        session.load()
    assert exc_info.value.status_code == 404
    assert str(exc_info.value).startswith("Pipeline not found")
    assert not session.is_loaded


def test_load_server_error(fake_client):
    fake_client.get.side_effect = ApiClientError("boom", "INTERNAL", 500)
    session = PipelineBuilderSession(fake_client, "pipe-1")
    with pytest.raises(PipelineLoadError, match="Failed to load pipeline: boom"):
        session.load()


# ---------------------- save preconditions ---------------------- #

def test_save_without_changes_issues_no_request(session, fake_client):
    with pytest.raises(NothingToSaveError):
        session.save()
    fake_client.put.assert_not_called()


def test_save_blocked_by_step_without_scanner(session, fake_client):
    session.editor.add_step()
    with pytest.raises(StepValidationError) as exc_info:
        session.save()

    assert exc_info.value.report.count == 1
    assert exc_info.value.report.message == "Please select a scanner for: New Scanner"
    fake_client.put.assert_not_called()
    assert session.has_changes


def test_save_read_only_pipeline(fake_client, pipeline_data):
    pipeline_data["is_system_template"] = True
    session = PipelineBuilderSession(fake_client, "pipe-1")
    session.load()

    assert session.read_only
    session.editor.has_changes = True
    with pytest.raises(ReadOnlyPipelineError):
        session.save()
    fake_client.put.assert_not_called()


def test_save_while_saving(session, fake_client):
    session.editor.add_step(tool_name="nmap")
    session.is_saving = True
    with pytest.raises(SaveInProgressError):
        session.save()
    fake_client.put.assert_not_called()


# ---------------------- save ---------------------- #

def test_save_payload_shape(session, fake_client):
    step = session.editor.add_step(tool_name="nuclei", position=(700, 100))
    session.editor.connect("step-1", step.id)
    session.editor.move_end((1000, 150))

    session.save()

    fake_client.put.assert_called_once()
    path, payload = fake_client.put.call_args[0]
    assert path == "/api/v1/pipelines/pipe-1"
    assert [s["order"] for s in payload["steps"]] == [1, 2, 3]
    assert payload["ui_end_position"] == {"x": 1000.0, "y": 150.0}
    assert payload["ui_start_position"] == {"x": 50.0, "y": 150.0}

    new = payload["steps"][2]
    assert new["tool"] == "nuclei"
    assert new["depends_on"] == ["nmap-aaaaaaaa"]
    assert new["ui_position"] == {"x": 700.0, "y": 100.0}
    for entry in payload["steps"]:
        assert "capabilities" not in entry
        assert "id" not in entry
    # description only sent when set
    assert "description" not in new


def test_save_success_clears_dirty_and_invalidates_caches(session, fake_client):
    session.editor.update_step("step-1", name="Ports")
    session.save()

    assert session.has_changes is False
    assert session.is_saving is False
    fake_client.invalidate.assert_called_once_with(endpoints.PIPELINE_CACHE_PREFIXES)
    assert "/api/v1/pipeline-runs" in endpoints.PIPELINE_CACHE_PREFIXES
    assert "/api/v1/scan-management/stats" in endpoints.PIPELINE_CACHE_PREFIXES


def test_save_rehydrates_from_server_response(session, fake_client, pipeline_data):
    step = session.editor.add_step(tool_name="nmap", label="Second ports")
    assert is_temp_id(step.id)

    saved = dict(pipeline_data)
    saved["steps"] = pipeline_data["steps"] + [
        {"id": "step-3", "step_key": step.step_key, "name": "Second ports", "order": 3, "tool": "nmap"}
    ]
    fake_client.put.side_effect = lambda path, payload: saved

    result = session.save()
    assert [s.id for s in result.steps] == ["step-1", "step-2", "step-3"]
    assert session.editor.get_step("step-3").ui_position is not None
    assert not any(is_temp_id(s.id) for s in session.editor.steps)


def test_save_failure_keeps_changes(session, fake_client):
    fake_client.put.side_effect = ApiClientError("Step key already exists", "CONFLICT", 409)
    session.editor.update_step("step-2", name="Renamed")

    with pytest.raises(PipelineSaveError, match="Step key already exists") as exc_info:
        session.save()

    assert exc_info.value.status_code == 409
    assert session.has_changes
    assert session.is_saving is False
    assert session.editor.get_step("step-2").name == "Renamed"
    fake_client.invalidate.assert_not_called()


# ---------------------- discard / leave ---------------------- #

def test_discard_reloads_server_copy(session):
    session.editor.delete_step("step-1")
    session.discard()
    assert len(session.editor.steps) == 2
    assert session.has_changes is False


def test_request_leave_without_changes_does_not_prompt(session):
    def confirm(prompt):
        raise AssertionError("should not prompt")

    assert session.request_leave(confirm) is True


def test_request_leave_with_changes(session):
    prompts = []
    session.editor.add_step(tool_name="nmap")

    assert session.request_leave(lambda p: prompts.append(p) or False) is False
    assert session.has_changes
    assert prompts == [UNSAVED_CHANGES_PROMPT]

    assert session.request_leave(lambda p: True) is True
    assert session.has_changes is False


def test_save_without_response_body_returns_edited_steps(session, fake_client):
    fake_client.put.side_effect = lambda path, payload: None
    session.editor.delete_step("step-1")
    session.editor.move_start((10, 20))

    result = session.save()

    assert [s.step_key for s in result.steps] == ["nuclei-bbbbbbbb"]
    assert result.steps[0].depends_on == []
    assert result.steps[0].order == 1
    assert result.ui_start_position.to_dict() == {"x": 10.0, "y": 20.0}
    assert result.steps[0] is not session.editor.steps[0]
