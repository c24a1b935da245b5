# rediver/pipelines/session.py
"""
Pipeline Builder Session
------------------------
Loads one pipeline template into a StepGraphEditor and writes the edited step
list back as a single bulk update.

Save preconditions (checked before any request is sent):
  1. the pipeline is not a system template
  2. there are unsaved changes
  3. every step has a tool or at least one capability

There is no conflict detection: the last save wins.
"""

import copy
from typing import Any, Callable, Dict, Optional

from rediver.clients import endpoints
from rediver.clients.client_rest import ApiClientError, RestClient, get_error_message
from rediver.core.ids import is_temp_id
from rediver.core.logger import log
from rediver.models.pipeline import PipelineTemplate
from rediver.models.tool import ToolCatalog
from rediver.pipelines.editor import StepGraphEditor
from rediver.pipelines.errors import (
    NothingToSaveError,
    PipelineBuilderError,
    PipelineLoadError,
    PipelineSaveError,
    ReadOnlyPipelineError,
    SaveInProgressError,
    StepValidationError,
)
from rediver.pipelines.layout import default_end_position, default_start_position, fill_missing_positions
from rediver.pipelines.validation import ValidationReport, validate_steps

UNSAVED_CHANGES_PROMPT = "You have unsaved changes. Are you sure you want to leave without saving?"
TOOL_CATALOG_PARAMS = {"is_active": True, "per_page": 100}


def fetch_tool_catalog(client: RestClient) -> ToolCatalog:
    return ToolCatalog.from_response(client.get(endpoints.all_tools(), params=TOOL_CATALOG_PARAMS))


class PipelineBuilderSession:
    def __init__(self, client: RestClient, pipeline_id: str, catalog: Optional[ToolCatalog] = None):
        self.client = client
        self.pipeline_id = pipeline_id
        self.catalog = catalog
        self.pipeline: Optional[PipelineTemplate] = None
        self.editor: Optional[StepGraphEditor] = None
        self.is_saving = False

    # ---------------------- STATE ---------------------- #

    @property
    def is_loaded(self) -> bool:
        return self.editor is not None

    @property
    def read_only(self) -> bool:
        return bool(self.pipeline and self.pipeline.is_system_template)

    @property
    def has_changes(self) -> bool:
        return bool(self.editor and self.editor.has_changes)

    def _require_loaded(self) -> StepGraphEditor:
        if self.editor is None:
            raise PipelineBuilderError("Pipeline is not loaded")
        return self.editor

    def validate(self) -> ValidationReport:
        return validate_steps(self._require_loaded().steps)

    # ---------------------- LOAD ---------------------- #

    def load(self) -> StepGraphEditor:
        """Fetch the pipeline (no retry) and hydrate a fresh editor."""
        try:
            data = self.client.get(endpoints.pipeline(self.pipeline_id), use_cache=False, retry=False)
        except ApiClientError as exc:
            message = "Pipeline not found" if exc.is_not_found else "Failed to load pipeline"
            raise PipelineLoadError(
                self.pipeline_id, f"{message}: {get_error_message(exc)}", exc.status_code
            ) from exc
        if not isinstance(data, dict):
            raise PipelineLoadError(self.pipeline_id, "Pipeline not found", 404)

        if self.catalog is None:
            try:
                self.catalog = fetch_tool_catalog(self.client)
            except ApiClientError as exc:
                raise PipelineLoadError(
                    self.pipeline_id, f"Failed to load tools: {get_error_message(exc)}", exc.status_code
                ) from exc

        self._hydrate(PipelineTemplate.from_dict(data))
        log(f"Loaded pipeline {self.pipeline.name} ({len(self.editor.steps)} steps)", verbose_only=True)
        return self.editor

    def _hydrate(self, pipeline: PipelineTemplate):
        self.pipeline = pipeline
        fill_missing_positions(pipeline.steps)
        editor = StepGraphEditor(self.catalog, read_only=pipeline.is_system_template)
        editor.replace_steps(
            pipeline.steps,
            pipeline.ui_start_position or default_start_position(),
            pipeline.ui_end_position or default_end_position(pipeline.steps),
        )
        self.editor = editor

    # ---------------------- SAVE ---------------------- #

    def build_update_request(self) -> Dict[str, Any]:
        editor = self._require_loaded()
        return {
            "steps": [step.to_update_request(order=index) for index, step in enumerate(editor.steps, start=1)],
            "ui_start_position": editor.start_position.to_dict() if editor.start_position else None,
            "ui_end_position": editor.end_position.to_dict() if editor.end_position else None,
        }

    def save(self) -> PipelineTemplate:
        editor = self._require_loaded()
        if self.read_only:
            raise ReadOnlyPipelineError()
        if not editor.has_changes:
            raise NothingToSaveError()
        report = validate_steps(editor.steps)
        if not report.is_valid:
            raise StepValidationError(report)
        if self.is_saving:
            raise SaveInProgressError()

        payload = self.build_update_request()
        created = sum(1 for s in editor.steps if is_temp_id(s.id))
        log(f"Saving {len(payload['steps'])} steps ({created} new)", verbose_only=True)
        self.is_saving = True
        try:
            data = self.client.put(endpoints.pipeline(self.pipeline_id), payload)
        except ApiClientError as exc:
            raise PipelineSaveError(get_error_message(exc, "Failed to save pipeline"), exc.status_code) from exc
        finally:
            self.is_saving = False

        self.client.invalidate(endpoints.PIPELINE_CACHE_PREFIXES)
        editor.mark_clean()
        if isinstance(data, dict) and data.get("steps") is not None:
            # Server-assigned ids replace the temp- ones
            saved = PipelineTemplate.from_dict(data)
            self._hydrate(saved)
        else:
            saved = self.pipeline
            saved.steps = copy.deepcopy(editor.steps)
            saved.ui_start_position = copy.copy(editor.start_position)
            saved.ui_end_position = copy.copy(editor.end_position)
        log(f"Saved pipeline {self.pipeline_id} ({len(payload['steps'])} steps)", verbose_only=True)
        return saved

    # ---------------------- DISCARD / LEAVE ---------------------- #

    def discard(self) -> StepGraphEditor:
        """Throw away local edits by re-fetching the server copy."""
        return self.load()

    def request_leave(self, confirm: Callable[[str], bool]) -> bool:
        """
        Navigation guard. Returns True when the caller may leave.
        With unsaved changes, leaving requires confirm(prompt) and drops the edits.
        """
        if not self.has_changes:
            return True
        if not confirm(UNSAVED_CHANGES_PROMPT):
            return False
        self.editor.mark_clean()
        return True
