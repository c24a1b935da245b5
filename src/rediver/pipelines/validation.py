# rediver/pipelines/validation.py
"""
Step Validation
---------------
A step can be saved only when it has a tool or at least one declared
capability. Steps that arrive from the server with capabilities but no tool
are accepted.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

from rediver.models.pipeline import Step


def is_step_invalid(step: Step) -> bool:
    return not step.tool and not step.capabilities


def find_invalid_steps(steps: List[Step]) -> List[Step]:
    return [s for s in steps if is_step_invalid(s)]


def find_dangling_dependencies(steps: List[Step]) -> List[Tuple[Step, str]]:
    """(step, key) pairs where a depends_on key names no step in the list."""
    keys = {s.step_key for s in steps}
    return [(s, dep) for s in steps for dep in s.depends_on if dep not in keys]


@dataclass
class ValidationReport:
    invalid_steps: List[Step] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.invalid_steps)

    @property
    def is_valid(self) -> bool:
        return not self.invalid_steps

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.invalid_steps]

    @property
    def message(self) -> str:
        if self.is_valid:
            return ""
        return f"Please select a scanner for: {', '.join(self.step_names)}"

    @property
    def badge(self) -> str:
        if self.is_valid:
            return ""
        return f"{self.count} step{'s' if self.count > 1 else ''} need scanner"


def validate_steps(steps: List[Step]) -> ValidationReport:
    return ValidationReport(find_invalid_steps(steps))
