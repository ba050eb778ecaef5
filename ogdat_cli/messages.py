"""Check message data structures.

A CheckMessage is one finding about one field. Its kind combines a level
(INFO, WARNING, ERROR) with optional semantic flags that say more about
the finding (the field was published in a legacy shape, a link was
probed, ...). Messages are data: no check result is ever raised.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from enum import IntFlag
from typing import Any

from ogdat_cli.parsers import printable

# Field ID used for findings about the document as a whole
DOCUMENT_LEVEL_ID = -1


class CheckFlag(IntFlag):
    """Level and semantic flags of a check message.

    INFO, WARNING and ERROR are levels; the rest qualify the finding.
    """

    INFO = 1
    WARNING = 2
    ERROR = 4
    STRUCTURAL_ERROR = 8
    NO_DATA_AT_URL = 16
    FETCHABLE_URL = 32
    FETCH_SUCCESS = 64
    EMPTY_DATA = 128


_LEVELS = (CheckFlag.ERROR, CheckFlag.WARNING, CheckFlag.INFO)

_FLAG_NAMES = {
    CheckFlag.STRUCTURAL_ERROR: "structural_error",
    CheckFlag.NO_DATA_AT_URL: "no_data_at_url",
    CheckFlag.FETCHABLE_URL: "fetchable_url",
    CheckFlag.FETCH_SUCCESS: "fetch_success",
    CheckFlag.EMPTY_DATA: "empty_data",
}


@dataclass(frozen=True)
class CheckMessage:
    """A single finding.

    Attributes:
        kind: Level plus semantic flags.
        field_id: ID of the field the finding is about, or DOCUMENT_LEVEL_ID.
        text: Human-readable detail.
        url: The probed link, set on FETCHABLE_URL findings.
    """

    kind: CheckFlag
    field_id: int
    text: str
    url: str | None = None

    def __post_init__(self) -> None:
        # Raw values may carry undecodable bytes; messages must stay encodable
        object.__setattr__(self, "text", printable(self.text))
        if self.url is not None:
            object.__setattr__(self, "url", printable(self.url))

    @property
    def level(self) -> CheckFlag:
        """The most severe level bit set in kind (INFO if none is set)."""
        for level in _LEVELS:
            if self.kind & level:
                return level
        return CheckFlag.INFO

    @property
    def status(self) -> str:
        return {CheckFlag.ERROR: "error", CheckFlag.WARNING: "warning"}.get(self.level, "info")

    @property
    def flags(self) -> list[str]:
        """Names of the semantic flags set in kind."""
        return [name for flag, name in _FLAG_NAMES.items() if self.kind & flag]

    def has(self, flag: CheckFlag) -> bool:
        return bool(self.kind & flag)

    def retarget(self, field_id: int, prefix: str = "") -> CheckMessage:
        """Copy with a new field ID and a prefix in front of the text."""
        return replace(self, field_id=field_id, text=prefix + self.text)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        data: dict[str, Any] = {
            "kind": int(self.kind),
            "status": self.status,
            "flags": self.flags,
            "field_id": self.field_id,
            "text": self.text,
        }
        if self.url is not None:
            data["url"] = self.url
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CheckMessage:
        return cls(
            CheckFlag(int(data["kind"])),
            int(data["field_id"]),
            str(data["text"]),
            data.get("url"),
        )


@dataclass
class CheckReport:
    """Messages of one check run, in emission order."""

    version: str
    messages: list[CheckMessage] = field(default_factory=list)

    @classmethod
    def of(cls, version: str, messages: Iterable[CheckMessage]) -> CheckReport:
        return cls(version=version, messages=list(messages))

    @property
    def errors(self) -> list[CheckMessage]:
        return [m for m in self.messages if m.level == CheckFlag.ERROR]

    @property
    def warnings(self) -> list[CheckMessage]:
        return [m for m in self.messages if m.level == CheckFlag.WARNING]

    @property
    def infos(self) -> list[CheckMessage]:
        return [m for m in self.messages if m.level == CheckFlag.INFO]

    @property
    def passed(self) -> bool:
        """True if no ERROR-level message was emitted."""
        return not self.errors

    def for_field(self, field_id: int) -> list[CheckMessage]:
        return [m for m in self.messages if m.field_id == field_id]

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for --json output."""
        return {
            "version": self.version,
            "passed": self.passed,
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "info_count": len(self.infos),
            "messages": [m.to_dict() for m in self.messages],
        }
