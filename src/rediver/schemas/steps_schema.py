# rediver/schemas/steps_schema.py
"""
Step Schema
-----------
Display fields for the steps of one pipeline, in execution order.
"""

from typing import Dict, List


class StepSchema:
    def __init__(self):
        self.display_fields: List[str] = [
            "order",
            "step_key",
            "name",
            "tool",
            "capabilities",
            "depends_on",
            "timeout_seconds",
            "ui_position",
            "id",
        ]

        self.display_headers: Dict[str, str] = {
            "order": "#",
            "step_key": "Key",
            "name": "Name",
            "tool": "Scanner",
            "capabilities": "Capabilities",
            "depends_on": "Depends On",
            "timeout_seconds": "Timeout (s)",
            "ui_position": "Position",
            "id": "ID",
        }

    def display_name(self, field: str) -> str:
        return self.display_headers.get(field, field)

    def all_display_fields(self) -> List[str]:
        return list(self.display_fields)


schema = StepSchema()
