"""Structured error codes for ogdat.

All errors follow the format OGDAT-{category}{number}:
- OGDAT-SPC*: Specification errors
- OGDAT-DOC*: Document errors
- OGDAT-PRT*: Portal errors
- OGDAT-SCH*: Scheduler and batch errors
- OGDAT-STO*: Tracking store errors
- OGDAT-CFG*: Configuration errors

Field-level findings are never raised. They are reported as CheckMessage
values (see ogdat_cli.messages).
"""

from __future__ import annotations

from typing import Any


class OgdatError(Exception):
    """Base class for all ogdat errors.

    All errors have:
    - code: Structured error code (e.g., OGDAT-SPC001)
    - message: Human-readable error message
    """

    code: str = "OGDAT-000"

    # Reserved attribute names that cannot be overwritten by context
    _RESERVED_ATTRS = frozenset({"code", "message", "context", "args"})

    def __init__(self, message: str, **context: Any) -> None:
        """Initialize an ogdat error.

        Args:
            message: Human-readable error message.
            **context: Additional context stored as error attributes.
                Reserved keys (code, message, context, args) are ignored.
        """
        self.message = message
        self.context = context
        for key, value in context.items():
            if key not in self._RESERVED_ATTRS:
                setattr(self, key, value)
        super().__init__(f"[{self.code}] {message}")

    def to_dict(self) -> dict[str, Any]:
        """Convert error to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": {k: str(v) for k, v in self.context.items()},
        }


# Specification Errors (OGDAT-SPC*)
class SpecError(OgdatError):
    """Base class for specification table errors."""

    code = "OGDAT-SPC000"


class SpecLoadError(SpecError):
    """Raised when a specification table cannot be parsed.

    Error code: OGDAT-SPC001

    No partial table is ever registered; the caller that needs the version
    must treat this as fatal.
    """

    code = "OGDAT-SPC001"

    def __init__(self, version: str, reason: str, line: int | None = None) -> None:
        where = f" (line {line})" if line is not None else ""
        super().__init__(
            f"Cannot load specification '{version}'{where}: {reason}",
            version=version,
            line=line,
        )


class SpecNotFoundError(SpecError):
    """Raised when no specification is registered for a version.

    Error code: OGDAT-SPC002
    """

    code = "OGDAT-SPC002"

    def __init__(self, version: str) -> None:
        super().__init__(
            f"No specification registered for '{version}', check cannot run",
            version=version,
        )


class UnknownSpecVersionError(SpecError):
    """Raised when a version string cannot be mapped to a supported version.

    Error code: OGDAT-SPC003
    """

    code = "OGDAT-SPC003"

    def __init__(self, value: str) -> None:
        super().__init__(f"Unsupported specification version: '{value}'", value=value)


class FieldMappingError(SpecError):
    """Raised when a descriptor has no slot in the document model.

    Error code: OGDAT-SPC004
    """

    code = "OGDAT-SPC004"

    def __init__(self, version: str, field_id: int) -> None:
        super().__init__(
            f"Specification '{version}' describes field ID{field_id} "
            "but the document model has no slot for it",
            version=version,
            field_id=field_id,
        )


class UnknownFieldError(SpecError):
    """Raised when a specification version has no field with a given ID or name.

    Error code: OGDAT-SPC005
    """

    code = "OGDAT-SPC005"

    def __init__(self, version: str, field: str) -> None:
        super().__init__(
            f"Specification '{version}' has no field '{field}'",
            version=version,
            field=field,
        )


# Document Errors (OGDAT-DOC*)
class DocumentError(OgdatError):
    """Base class for metadata document errors."""

    code = "OGDAT-DOC000"


class DocumentParseError(DocumentError):
    """Raised when a metadata document is not a JSON object.

    Error code: OGDAT-DOC001
    """

    code = "OGDAT-DOC001"

    def __init__(self, reason: str, source: str | None = None) -> None:
        prefix = f"{source}: " if source else ""
        super().__init__(f"{prefix}not a metadata document: {reason}", source=source)


# Portal Errors (OGDAT-PRT*)
class PortalError(OgdatError):
    """Raised when the data portal cannot be queried.

    Error code: OGDAT-PRT000

    Carries ``status_code`` when the portal answered with a non-2xx status.
    """

    code = "OGDAT-PRT000"

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message, url=url, status_code=status_code)

    @property
    def is_deleted(self) -> bool:
        """True when the portal reports the dataset as deleted (HTTP 403)."""
        return self.status_code == 403


# Scheduler Errors (OGDAT-SCH*)
class SchedulerError(OgdatError):
    """Base class for scheduler and batch errors."""

    code = "OGDAT-SCH000"


class SchedulerConfigError(SchedulerError):
    """Raised when the scheduler is configured with fewer than one worker.

    Error code: OGDAT-SCH001
    """

    code = "OGDAT-SCH001"

    def __init__(self, workers: int) -> None:
        super().__init__(f"Number of workers must be at least 1, got {workers}", workers=workers)


class BatchWorkerError(SchedulerError):
    """Raised when a worker of a batch fails.

    Error code: OGDAT-SCH002

    The whole batch is treated as failed; its buffered results are discarded.
    """

    code = "OGDAT-SCH002"

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Batch worker failed: {cause}", cause=cause)


# Store Errors (OGDAT-STO*)
class StoreError(OgdatError):
    """Raised when the tracking store cannot be read or written.

    Error code: OGDAT-STO000
    """

    code = "OGDAT-STO000"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Tracking store {path}: {reason}", path=path)


# Configuration Errors (OGDAT-CFG*)
class ConfigError(OgdatError):
    """Base class for configuration errors."""

    code = "OGDAT-CFG000"


class ConfigParseError(ConfigError):
    """Raised when the configuration file is not valid YAML.

    Error code: OGDAT-CFG001
    """

    code = "OGDAT-CFG001"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Cannot parse config file {path}: {reason}", path=path)


class ConfigInvalidValueError(ConfigError):
    """Raised when a setting has a value of the wrong type or range.

    Error code: OGDAT-CFG002
    """

    code = "OGDAT-CFG002"

    def __init__(self, key: str, value: Any, expected: str) -> None:
        super().__init__(
            f"Invalid value for '{key}': {value!r} (expected {expected})",
            key=key,
            value=value,
        )
