# rediver/core/output_manager.py
"""
Output Manager
---------------
Centralizes CLI output:
 - Table rendering (Rich)
 - JSON export to stdout or file
 - Schema-driven column order and headers
"""

import json
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.table import Table

console = Console()

OUTPUT_FORMATS = ("table", "json")


def _columns(data: List[Dict[str, Any]], schema=None):
    if schema is not None and hasattr(schema, "display_fields"):
        fields = schema.all_display_fields()
        return fields, [schema.display_name(f) for f in fields]
    fields = list(data[0].keys())
    return fields, fields


def export_data(
    data: List[Dict[str, Any]],
    schema=None,
    fmt: str = "table",
    output: Optional[str] = None,
    title: Optional[str] = None,
):
    """Exports data as a table or JSON using the schema's display fields."""
    if fmt not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format '{fmt}' (expected one of: {', '.join(OUTPUT_FORMATS)})")

    # --- JSON output ---
    if fmt == "json":
        result = json.dumps(data, indent=2, ensure_ascii=False, default=str)
        if output:
            with open(output, "w", encoding="utf-8") as f:
                f.write(result)
            console.print(f"[green]File saved to {output}[/green]")
        else:
            print(result)
        return

    # --- TABLE output ---
    if not data:
        console.print("[yellow]⚠️ No data to display.[/yellow]")
        return

    field_keys, columns = _columns(data, schema)

    def _is_numeric_column(key: str) -> bool:
        for row in data:
            val = row.get(key)
            if val is None or val == "":
                continue
            if isinstance(val, bool):
                return False
            try:
                float(val)
            except (TypeError, ValueError):
                return False
        return True

    table = Table(
        title=title or "Results",
        show_header=True,
        header_style="bold cyan",
        row_styles=["none", "dim"],
    )
    for col_key, col_name in zip(field_keys, columns):
        table.add_column(
            col_name,
            overflow="fold",
            max_width=40,
            justify="right" if _is_numeric_column(col_key) else "left",
        )
    for row in data:
        table.add_row(*(_cell(row.get(k, "")) for k in field_keys))

    if output:
        with open(output, "w", encoding="utf-8") as f:
            Console(file=f, width=200).print(table)
        console.print(f"[green]File saved to {output}[/green]")
    else:
        console.print(table)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)
