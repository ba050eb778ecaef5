"""Standardized terminal output utilities.

All user-facing CLI messages go through these functions so the checker
and the watcher print consistently.

Basic Usage:
    from ogdat_cli.output import success, info, warn, error, detail

    success("metadata.json passed OGD Austria Metadata 2.2")
    info("Checking metadata.json")
    warn("3 warnings")
    error("Unknown specification version '1.9'")
    detail("R   0: link not followed")

Check messages are rendered with the symbol and color of their level:

    check_message(message, label="Titel")
    #   ✗ [8 Titel] text contains unsuitable characters ...
"""

from __future__ import annotations

import sys
from typing import TextIO

import click

from ogdat_cli.messages import CheckFlag, CheckMessage, CheckReport

# ANSI color codes via click's style system
_STYLES = {
    "success": {"fg": "green"},
    "info": {"fg": "blue"},
    "warn": {"fg": "yellow"},
    "error": {"fg": "red"},
    "detail": {"fg": "bright_black"},  # Dimmed/gray
}

_PREFIXES = {
    "success": "\u2713",  # checkmark
    "info": "\u2192",  # arrow
    "warn": "\u26a0",  # warning
    "error": "\u2717",  # X
    "detail": " ",  # space (no prefix, just indent)
}

_LEVEL_STYLES = {
    CheckFlag.ERROR: "error",
    CheckFlag.WARNING: "warn",
    CheckFlag.INFO: "info",
}


def _output(message: str, style: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Internal helper for styled output."""
    fg_color = _STYLES[style]["fg"]
    styled_prefix = click.style(_PREFIXES[style], fg=fg_color)
    styled_message = click.style(message, fg=fg_color)
    click.echo(f"{styled_prefix} {styled_message}", file=file, nl=nl)


def success(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a success message with green checkmark (stdout)."""
    _output(message, "success", file=file, nl=nl)


def info(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print an info message with blue arrow (stdout)."""
    _output(message, "info", file=file, nl=nl)


def warn(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a warning message with yellow warning symbol.

    Args:
        message: The message to display.
        file: File to write to (default: stderr).
        nl: Whether to print a newline after the message.
    """
    _output(message, "warn", file=file or sys.stderr, nl=nl)


def error(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print an error message with red X.

    Args:
        message: The message to display.
        file: File to write to (default: stderr).
        nl: Whether to print a newline after the message.
    """
    _output(message, "error", file=file or sys.stderr, nl=nl)


def detail(message: str, *, file: TextIO | None = None, nl: bool = True) -> None:
    """Print a detail/progress message in dimmed text (stdout)."""
    _output(message, "detail", file=file, nl=nl)


def format_check_message(message: CheckMessage, label: str | None = None) -> str:
    """Plain-text form of a check message: ``[field label] text``."""
    if message.field_id < 0:
        where = "document"
    elif label:
        where = f"{message.field_id} {label}"
    else:
        where = str(message.field_id)
    flags = f" ({', '.join(message.flags)})" if message.flags else ""
    return f"[{where}] {message.text}{flags}"


def check_message(
    message: CheckMessage, label: str | None = None, *, file: TextIO | None = None
) -> None:
    """Print one check message in the style of its level (stdout)."""
    _output(format_check_message(message, label), _LEVEL_STYLES[message.level], file=file)


def report_summary(report: CheckReport, source: str, *, file: TextIO | None = None) -> None:
    """Print the closing line of a check run."""
    counts = (
        f"{len(report.errors)} error(s), {len(report.warnings)} warning(s), "
        f"{len(report.infos)} info(s)"
    )
    if report.passed:
        success(f"{source} passed {report.version}: {counts}", file=file)
    else:
        error(f"{source} failed {report.version}: {counts}", file=file or sys.stdout)
