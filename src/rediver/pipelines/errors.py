# rediver/pipelines/errors.py
"""Exceptions raised by the pipeline builder."""

from typing import Optional


class PipelineBuilderError(Exception):
    """Base class for pipeline builder failures."""


class StepNotFoundError(PipelineBuilderError):
    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' not found")


class UnknownStepFieldError(PipelineBuilderError):
    def __init__(self, fields):
        self.fields = sorted(fields)
        super().__init__(f"Unknown step field(s): {', '.join(self.fields)}")


class DuplicateStepKeyError(PipelineBuilderError):
    def __init__(self, step_key: str):
        self.step_key = step_key
        super().__init__(f"Step key '{step_key}' is already used in this pipeline")


class DependencyCycleError(PipelineBuilderError):
    def __init__(self, source_key: str, target_key: str):
        self.source_key = source_key
        self.target_key = target_key
        super().__init__(f"Linking '{source_key}' -> '{target_key}' would create a dependency cycle")


class ReadOnlyPipelineError(PipelineBuilderError):
    def __init__(self, message: str = "System templates are read-only. Clone the pipeline to edit it."):
        super().__init__(message)


class NothingToSaveError(PipelineBuilderError):
    def __init__(self):
        super().__init__("No unsaved changes")


class StepValidationError(PipelineBuilderError):
    """Save blocked: one or more steps have no scanner."""

    def __init__(self, report):
        self.report = report
        super().__init__(report.message)


class SaveInProgressError(PipelineBuilderError):
    def __init__(self):
        super().__init__("A save is already in progress")


class PipelineLoadError(PipelineBuilderError):
    def __init__(self, pipeline_id: str, message: str, status_code: Optional[int] = None):
        self.pipeline_id = pipeline_id
        self.status_code = status_code
        super().__init__(message)


class PipelineSaveError(PipelineBuilderError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
