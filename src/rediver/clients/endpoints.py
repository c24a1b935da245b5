# rediver/clients/endpoints.py
"""REST paths used by the CLI."""

PIPELINES = "/api/v1/pipelines"
PIPELINE_RUNS = "/api/v1/pipeline-runs"
SCAN_MANAGEMENT_STATS = "/api/v1/scan-management/stats"
TENANT_TOOLS = "/api/v1/tenant-tools"

# Cached reads that must be refreshed after any pipeline write
PIPELINE_CACHE_PREFIXES = (PIPELINES, PIPELINE_RUNS, SCAN_MANAGEMENT_STATS)


def pipeline_list() -> str:
    return PIPELINES


def pipeline(pipeline_id: str) -> str:
    return f"{PIPELINES}/{pipeline_id}"


def pipeline_activate(pipeline_id: str) -> str:
    return f"{PIPELINES}/{pipeline_id}/activate"


def pipeline_deactivate(pipeline_id: str) -> str:
    return f"{PIPELINES}/{pipeline_id}/deactivate"


def pipeline_clone(pipeline_id: str) -> str:
    return f"{PIPELINES}/{pipeline_id}/clone"


def all_tools() -> str:
    return f"{TENANT_TOOLS}/all-tools"
