import typer
from rediver.commands import pipelines
from rediver.commands import tools
from rediver.core.logger import log, set_verbosity
from rediver.core.notifier import info, warning
from rediver.core.version import check_for_updates, read_local_version, REMOTE_OVERRIDE_ENV

app = typer.Typer(help="Rediver Platform CLI - scan pipeline builder")

app.add_typer(pipelines.app, name="pipelines", help="Manage pipeline templates and edit their steps.")
app.add_typer(tools.app, name="tools", help="Browse the scanner tool catalog.")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    quiet: bool = typer.Option(False, "--quiet", help="Silence non-error output."),
    verbose: bool = typer.Option(False, "--verbose", help="Show verbose logs (HTTP requests, etc.)."),
):
    set_verbosity(quiet=quiet, verbose=verbose)

    if ctx.resilient_parsing:
        return
    try:
        local, remote, outdated, remote_missing = check_for_updates()
        if outdated and remote:
            info(f"A new CLI version is available: {remote} (current: {local}).")
        elif remote_missing:
            log(f"Could not check remote version. Set {REMOTE_OVERRIDE_ENV} to override.", style="yellow", verbose_only=True)
    except Exception as exc:
        warning(f"Version check skipped due to error: {exc}")


@app.command("version")
def show_version():
    """Print the installed CLI version."""
    typer.echo(read_local_version())


if __name__ == "__main__":
    app()
