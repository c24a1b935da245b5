# rediver/models/pipeline.py
"""
Pipeline Models
---------------
Plain data types for pipeline templates and their steps, plus conversion
from/to the backend's snake_case JSON.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_STEP_TIMEOUT = 3600


@dataclass
class UIPosition:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["UIPosition"]:
        if not isinstance(data, dict) or data.get("x") is None or data.get("y") is None:
            return None
        return cls(x=float(data["x"]), y=float(data["y"]))

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class StepCondition:
    type: str = "always"
    value: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["StepCondition"]:
        if not isinstance(data, dict) or not data.get("type"):
            return None
        return cls(type=data["type"], value=data.get("value"))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type}
        if self.value is not None:
            out["value"] = self.value
        return out


@dataclass
class Step:
    """One node of a pipeline template."""

    id: str
    step_key: str
    name: str
    description: str = ""
    order: int = 0
    ui_position: Optional[UIPosition] = None
    node_type: str = "scanner"
    tool: str = ""
    capabilities: List[str] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)
    timeout_seconds: Optional[int] = DEFAULT_STEP_TIMEOUT
    depends_on: List[str] = field(default_factory=list)
    condition: Optional[StepCondition] = None
    max_retries: int = 0
    retry_delay_seconds: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        return cls(
            id=str(data.get("id") or ""),
            step_key=data.get("step_key") or "",
            name=data.get("name") or "",
            description=data.get("description") or "",
            order=int(data.get("order") or 0),
            ui_position=UIPosition.from_dict(data.get("ui_position")),
            node_type=data.get("node_type") or "scanner",
            tool=data.get("tool") or "",
            capabilities=list(data.get("capabilities") or []),
            config=dict(data.get("config") or {}),
            timeout_seconds=data.get("timeout_seconds", DEFAULT_STEP_TIMEOUT),
            depends_on=list(data.get("depends_on") or []),
            condition=StepCondition.from_dict(data.get("condition")),
            max_retries=int(data.get("max_retries") or 0),
            retry_delay_seconds=int(data.get("retry_delay_seconds") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Full representation (used for exports)."""
        return {
            "id": self.id,
            "step_key": self.step_key,
            "name": self.name,
            "description": self.description,
            "order": self.order,
            "ui_position": self.ui_position.to_dict() if self.ui_position else None,
            "node_type": self.node_type,
            "tool": self.tool,
            "capabilities": list(self.capabilities),
            "config": dict(self.config),
            "timeout_seconds": self.timeout_seconds,
            "depends_on": list(self.depends_on),
            "condition": self.condition.to_dict() if self.condition else None,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
        }

    def to_update_request(self, order: int) -> Dict[str, Any]:
        """Step payload for a bulk pipeline update. Capabilities are left for the server to derive."""
        out: Dict[str, Any] = {
            "step_key": self.step_key,
            "name": self.name,
            "order": order,
            "tool": self.tool,
            "timeout_seconds": self.timeout_seconds,
            "depends_on": list(self.depends_on),
        }
        if self.description:
            out["description"] = self.description
        if self.ui_position:
            out["ui_position"] = self.ui_position.to_dict()
        return out


@dataclass
class PipelineTrigger:
    type: str = "manual"
    schedule: Optional[str] = None
    webhook: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineTrigger":
        return cls(
            type=data.get("type") or "manual",
            schedule=data.get("schedule"),
            webhook=data.get("webhook"),
            filters=dict(data.get("filters") or {}),
        )


@dataclass
class PipelineSettings:
    max_parallel_steps: int = 3
    fail_fast: bool = False
    retry_failed_steps: int = 0
    timeout_seconds: int = 3600
    notify_on_complete: bool = False
    notify_on_failure: bool = True
    notification_channels: List[str] = field(default_factory=list)
    agent_preference: str = "auto"

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PipelineSettings":
        defaults = cls()
        data = data or {}
        return cls(
            max_parallel_steps=data.get("max_parallel_steps", defaults.max_parallel_steps),
            fail_fast=data.get("fail_fast", defaults.fail_fast),
            retry_failed_steps=data.get("retry_failed_steps", defaults.retry_failed_steps),
            timeout_seconds=data.get("timeout_seconds", defaults.timeout_seconds),
            notify_on_complete=data.get("notify_on_complete", defaults.notify_on_complete),
            notify_on_failure=data.get("notify_on_failure", defaults.notify_on_failure),
            notification_channels=list(data.get("notification_channels") or []),
            agent_preference=data.get("agent_preference") or defaults.agent_preference,
        )


@dataclass
class PipelineTemplate:
    """Aggregate root: a named, versioned set of steps with triggers and settings."""

    id: str
    name: str
    tenant_id: str = ""
    description: str = ""
    version: int = 1
    is_active: bool = False
    is_system_template: bool = False
    triggers: List[PipelineTrigger] = field(default_factory=list)
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    tags: List[str] = field(default_factory=list)
    steps: List[Step] = field(default_factory=list)
    ui_start_position: Optional[UIPosition] = None
    ui_end_position: Optional[UIPosition] = None
    created_at: str = ""
    updated_at: str = ""
    created_by: Optional[str] = None

    @property
    def read_only(self) -> bool:
        return self.is_system_template

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineTemplate":
        return cls(
            id=str(data.get("id") or ""),
            name=data.get("name") or "",
            tenant_id=data.get("tenant_id") or "",
            description=data.get("description") or "",
            version=int(data.get("version") or 1),
            is_active=bool(data.get("is_active")),
            is_system_template=bool(data.get("is_system_template")),
            triggers=[PipelineTrigger.from_dict(t) for t in data.get("triggers") or [] if isinstance(t, dict)],
            settings=PipelineSettings.from_dict(data.get("settings")),
            tags=list(data.get("tags") or []),
            steps=[Step.from_dict(s) for s in data.get("steps") or [] if isinstance(s, dict)],
            ui_start_position=UIPosition.from_dict(data.get("ui_start_position")),
            ui_end_position=UIPosition.from_dict(data.get("ui_end_position")),
            created_at=data.get("created_at") or "",
            updated_at=data.get("updated_at") or "",
            created_by=data.get("created_by"),
        )
