"""Error types and the per-build error collector."""

from dataclasses import dataclass
from typing import List


class CmsMarkerError(Exception):
    """Base class for errors raised by the cms_marker engine."""


class PageProcessingError(CmsMarkerError):
    """A whole rendered page could not be processed."""

    def __init__(self, file: str, cause: BaseException):
        super().__init__(f"{file}: {cause}")
        self.file = file
        self.cause = cause


@dataclass
class RecordedError:
    context: str
    error: BaseException

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass
class RecordedWarning:
    context: str
    message: str


class ErrorCollector:
    """
    Collects errors and warnings during a build so processing can continue
    and the failures are reported once at the end.
    """

    def __init__(self):
        self._errors: List[RecordedError] = []
        self._warnings: List[RecordedWarning] = []

    def add_error(self, context: str, error: BaseException) -> None:
        self._errors.append(RecordedError(context, error))

    def add_warning(self, context: str, message: str) -> None:
        self._warnings.append(RecordedWarning(context, message))

    def has_errors(self) -> bool:
        return bool(self._errors)

    def has_warnings(self) -> bool:
        return bool(self._warnings)

    @property
    def errors(self) -> List[RecordedError]:
        return list(self._errors)

    @property
    def warnings(self) -> List[RecordedWarning]:
        return list(self._warnings)

    def summary(self) -> str:
        lines = []
        if self._errors:
            lines.append(f"{len(self._errors)} error(s):")
            lines.extend(f"  - {e.context}: {e.message}" for e in self._errors)
        if self._warnings:
            lines.append(f"{len(self._warnings)} warning(s):")
            lines.extend(f"  - {w.context}: {w.message}" for w in self._warnings)
        return "\n".join(lines)

    def clear(self) -> None:
        self._errors = []
        self._warnings = []
