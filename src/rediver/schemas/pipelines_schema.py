# rediver/schemas/pipelines_schema.py
"""
Pipeline Schema
---------------
Display fields for pipeline template listings.

Columns:
  ID | Name | Version | Active | System | Steps | Triggers | Tags | Updated
"""

from typing import Dict, List


class PipelineSchema:
    def __init__(self):
        self.display_fields: List[str] = [
            "id",
            "name",
            "version",
            "is_active",
            "is_system_template",
            "steps",
            "triggers",
            "tags",
            "updated_at",
        ]

        self.display_headers: Dict[str, str] = {
            "id": "ID",
            "name": "Name",
            "version": "Version",
            "is_active": "Active",
            "is_system_template": "System",
            "steps": "Steps",
            "triggers": "Triggers",
            "tags": "Tags",
            "updated_at": "Last Updated",
        }

    def display_name(self, field: str) -> str:
        return self.display_headers.get(field, field)

    def all_display_fields(self) -> List[str]:
        return list(self.display_fields)


schema = PipelineSchema()
