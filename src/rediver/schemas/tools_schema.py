# rediver/schemas/tools_schema.py
"""Display fields for the tool catalog."""

from typing import Dict, List


class ToolSchema:
    def __init__(self):
        self.display_fields: List[str] = ["name", "display_name", "capabilities"]
        self.display_headers: Dict[str, str] = {
            "name": "Tool",
            "display_name": "Display Name",
            "capabilities": "Capabilities",
        }

    def display_name(self, field: str) -> str:
        return self.display_headers.get(field, field)

    def all_display_fields(self) -> List[str]:
        return list(self.display_fields)


schema = ToolSchema()
