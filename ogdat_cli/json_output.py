"""JSON output envelope for machine-readable CLI output.

Every command run with ``--json`` (or ``ogdat --format json``) prints one
envelope:

    {
        "success": true|false,
        "command": "check",
        "data": { ... },
        "errors": [ ... ]  # Only present when success=false
    }

For ``check``, success mirrors the exit code: it is false when the report
holds an ERROR-level message, and the report is still included in data.

Usage:
    from ogdat_cli.json_output import error_envelope, error_detail, success_envelope

    envelope = success_envelope("spec list", {"versions": [...]})
    click.echo(envelope.to_json())

    envelope = error_envelope("check", [error_detail(exc)])
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from ogdat_cli.errors import OgdatError


@dataclass
class ErrorDetail:
    """One entry of the errors array.

    Attributes:
        type: Error class name (e.g., "SpecNotFoundError")
        message: Human-readable error description
        code: Structured error code for OgdatError subclasses
        context: Extra fields of the error, if any
    """

    type: str
    message: str
    code: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {"type": self.type, "message": self.message}
        if self.code is not None:
            result["code"] = self.code
        if self.context:
            result["context"] = self.context
        return result


def error_detail(exc: BaseException) -> ErrorDetail:
    """Build an ErrorDetail from an exception, keeping OgdatError context."""
    if isinstance(exc, OgdatError):
        data = exc.to_dict()
        return ErrorDetail(
            type=type(exc).__name__,
            message=exc.message,
            code=exc.code,
            context=data.get("context", {}),
        )
    return ErrorDetail(type=type(exc).__name__, message=str(exc))


@dataclass
class OutputEnvelope:
    """The wrapper structure for all JSON command output.

    Attributes:
        success: True if command completed without errors, False otherwise
        command: Name of the command that produced this output
        data: Command-specific payload; structure varies by command
        errors: Array of error objects; present only when success=False
    """

    success: bool
    command: str
    data: dict[str, Any] | None
    errors: list[ErrorDetail] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary; errors is omitted when None."""
        result: dict[str, Any] = {
            "success": self.success,
            "command": self.command,
            "data": self.data,
        }

        if self.errors is not None:
            result["errors"] = [e.to_dict() for e in self.errors]

        return result

    def to_json(self, *, indent: int | None = 2) -> str:
        """Convert to JSON string; non-ASCII text is kept as is."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


def success_envelope(command: str, data: dict[str, Any]) -> OutputEnvelope:
    """Create a success envelope with the given command and data."""
    return OutputEnvelope(success=True, command=command, data=data)


def error_envelope(
    command: str,
    errors: list[ErrorDetail],
    *,
    data: dict[str, Any] | None = None,
) -> OutputEnvelope:
    """Create an error envelope with the given command and errors.

    Args:
        command: Name of the command (e.g., "check", "watch run")
        errors: List of ErrorDetail objects describing the errors
        data: Optional partial data to include (default: empty dict)

    Returns:
        OutputEnvelope with success=False and the provided errors
    """
    return OutputEnvelope(
        success=False,
        command=command,
        data=data if data is not None else {},
        errors=errors,
    )
