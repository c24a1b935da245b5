import copy
from unittest.mock import MagicMock

import pytest

from rediver.clients import endpoints
from rediver.models.pipeline import Step
from rediver.models.tool import CatalogTool, ToolCatalog
from rediver.pipelines.editor import StepGraphEditor


TOOLS_RESPONSE = {
    "items": [
        {
            "tool": {"name": "nmap", "display_name": "Nmap", "is_active": True, "capabilities": ["port_scan"]},
            "is_enabled": True,
            "is_available": True,
        },
        {
            "tool": {"name": "nuclei", "display_name": "Nuclei", "is_active": True, "capabilities": ["vuln_scan"]},
            "is_enabled": True,
            "is_available": True,
        },
        {
            "tool": {"name": "subfinder", "display_name": "Subfinder", "is_active": True, "capabilities": ["recon"]},
            "is_enabled": False,
            "is_available": True,
        },
    ]
}

PIPELINE_RESPONSE = {
    "id": "pipe-1",
    "tenant_id": "tenant-1",
    "name": "External Recon",
    "description": "Ports then vulns",
    "version": 3,
    "is_active": True,
    "is_system_template": False,
    "triggers": [{"type": "manual"}],
    "settings": {"max_parallel_steps": 2, "agent_preference": "tenant"},
    "tags": ["external"],
    "steps": [
        {
            "id": "step-1",
            "step_key": "nmap-aaaaaaaa",
            "name": "Port scan",
            "order": 1,
            "tool": "nmap",
            "capabilities": ["port_scan"],
            "timeout_seconds": 1800,
            "depends_on": [],
            "ui_position": {"x": 150, "y": 100},
        },
        {
            "id": "step-2",
            "step_key": "nuclei-bbbbbbbb",
            "name": "Vuln scan",
            "order": 2,
            "tool": "nuclei",
            "capabilities": ["vuln_scan"],
            "timeout_seconds": 3600,
            "depends_on": ["nmap-aaaaaaaa"],
            "ui_position": {"x": 430, "y": 100},
        },
    ],
    "ui_start_position": {"x": 50, "y": 150},
    "ui_end_position": {"x": 710, "y": 150},
    "updated_at": "2026-01-01T00:00:00Z",
}


@pytest.fixture
def catalog():
    return ToolCatalog([
        CatalogTool("nmap", "Nmap", ["port_scan"]),
        CatalogTool("nuclei", "Nuclei", ["vuln_scan"]),
        CatalogTool("httpx", "httpx", ["http_scan", "recon"]),
    ])


def make_step(step_id, key, name=None, tool="nmap", depends_on=None, capabilities=None):
    return Step(
        id=step_id,
        step_key=key,
        name=name or key,
        tool=tool,
        capabilities=list(capabilities) if capabilities is not None else (["port_scan"] if tool else []),
        depends_on=list(depends_on or []),
    )


@pytest.fixture
def editor(catalog):
    """Editor hydrated with a three-step chain a -> b -> c."""
    ed = StepGraphEditor(catalog)
    ed.replace_steps([
        make_step("s1", "a", "Step A"),
        make_step("s2", "b", "Step B", depends_on=["a"]),
        make_step("s3", "c", "Step C", depends_on=["b"]),
    ])
    return ed


@pytest.fixture
def pipeline_data():
    return copy.deepcopy(PIPELINE_RESPONSE)


@pytest.fixture
def fake_client(pipeline_data):
    """MagicMock standing in for RestClient, answering the pipeline and tool reads."""
    client = MagicMock()

    def _get(path, params=None, use_cache=True, retry=True):
        if path == endpoints.all_tools():
            return copy.deepcopy(TOOLS_RESPONSE)
        if path == endpoints.pipeline(pipeline_data["id"]):
            return copy.deepcopy(pipeline_data)
        raise AssertionError(f"unexpected GET {path}")

    client.get.side_effect = _get
    client.put.side_effect = lambda path, payload: None
    client.invalidate.return_value = 0
    return client
