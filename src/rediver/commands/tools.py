# rediver/commands/tools.py
"""
Tools Command Module
--------------------
Lists the scanner tools the current tenant can bind pipeline steps to.
"""

from typing import Optional

import typer

from rediver.clients.client_rest import ApiClientError, build_client, get_error_message
from rediver.core.notifier import error, info, summary
from rediver.core.output_manager import export_data
from rediver.pipelines.session import fetch_tool_catalog
from rediver.schemas.tools_schema import schema

app = typer.Typer(help="Browse the scanner tool catalog.")


@app.command("list")
def list_tools(
    capability: Optional[str] = typer.Option(None, "--capability", help="Only tools declaring this capability."),
    fmt: str = typer.Option("table", "--format", "-f", help="Output format: table, json."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file path."),
):
    """List active, enabled and available tools with their capabilities."""
    if fmt == "table":
        info("Fetching tool catalog...")
    try:
        catalog = fetch_tool_catalog(build_client())
    except (ApiClientError, EnvironmentError, ValueError) as exc:
        error(f"Error listing tools: {get_error_message(exc)}")
        raise typer.Exit(code=1)

    rows = [
        {"name": t.name, "display_name": t.display_name, "capabilities": ", ".join(t.capabilities)}
        for t in catalog
        if not capability or capability in t.capabilities
    ]
    if not rows:
        info("No tools found.")
        raise typer.Exit()

    export_data(rows, schema=schema, fmt=fmt, output=output, title="Tool Catalog")
    if fmt == "table" or output:
        summary(f"{len(rows)} tool(s) listed.")
