"""One-line, prefixed status output.

Everything presubmit decides (dispatch, skip, cancel, submit) is printed as a
single line starting with OUTPUT_PREFIX so the CI logs can be grepped.
"""

from __future__ import annotations

from rich.console import Console

OUTPUT_PREFIX = "[PRESUBMIT]"

console = Console(highlight=False, emoji=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, emoji=False, soft_wrap=True)


def _emit(target: Console, message: str) -> None:
    if message.startswith("###"):
        target.print()
    target.print(f"{OUTPUT_PREFIX} {message.rstrip()}", markup=False)


def printf(message: str) -> None:
    """Print a prefixed status line to stdout."""
    _emit(console, message)


def eprintf(message: str) -> None:
    """Print a prefixed error line to stderr."""
    _emit(err_console, message)
