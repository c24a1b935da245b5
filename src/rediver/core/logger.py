# rediver/core/logger.py
"""
Diagnostic logging on stderr, so `--format json` output on stdout stays parseable
even with --verbose. Verbosity is set once by the root callback in rediver.app.
"""

from rich.console import Console
from rich.markup import escape

console = Console(stderr=True)

QUIET = False
VERBOSE = False


def set_verbosity(quiet: bool = False, verbose: bool = False):
    global QUIET, VERBOSE
    QUIET = quiet
    # --quiet wins over --verbose
    VERBOSE = verbose and not quiet


def log(message: str, style: str = "cyan", force: bool = False, verbose_only: bool = False):
    """Print a styled diagnostic line. Request bodies and params are escaped, not parsed as markup."""
    if QUIET and not force:
        return
    if verbose_only and not VERBOSE:
        return
    console.print(escape(str(message)), style=style)
