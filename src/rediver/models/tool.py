# rediver/models/tool.py
"""
Tool Catalog
------------
Scanner tools available to the current tenant, and the tool -> capabilities
lookup the pipeline editor relies on.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional


@dataclass
class CatalogTool:
    name: str
    display_name: str
    capabilities: List[str] = field(default_factory=list)


class ToolCatalog:
    """Read-only view over the tools a step may be bound to."""

    def __init__(self, tools: Optional[List[CatalogTool]] = None):
        self._tools: Dict[str, CatalogTool] = {}
        for tool in tools or []:
            self._tools[tool.name] = tool

    @classmethod
    def from_response(cls, data: Optional[Dict[str, Any]]) -> "ToolCatalog":
        """
        Build from a tools-with-config list response:
          {"items": [{"tool": {...}, "is_enabled": bool, "is_available": bool}, ...]}
        Only enabled, active and available tools make it into the catalog.
        """
        tools: List[CatalogTool] = []
        for item in (data or {}).get("items") or []:
            tool = item.get("tool") or {}
            if not (item.get("is_enabled") and tool.get("is_active") and item.get("is_available")):
                continue
            name = tool.get("name")
            if not name:
                continue
            tools.append(CatalogTool(
                name=name,
                display_name=tool.get("display_name") or name,
                capabilities=list(tool.get("capabilities") or []),
            ))
        return cls(tools)

    def get(self, name: str) -> Optional[CatalogTool]:
        if not name:
            return None
        return self._tools.get(name)

    def capabilities_for(self, name: str) -> List[str]:
        tool = self.get(name)
        return list(tool.capabilities) if tool else []

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[CatalogTool]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)
