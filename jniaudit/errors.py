"""
jniaudit/errors.py
══════════════════

Error types and structured diagnostics for the JNI boundary audit.

Error Hierarchy
───────────────
  AuditError (base)
  ├── IRParseError      - the IR dump cannot be read at all
  └── MalformedIRError  - one function has an unexpected shape

Only ``IRParseError`` is fatal, and only for the file being loaded.
``MalformedIRError`` is raised from deep inside the analysis (usually when
a value carries no static type) and is caught by the entry driver, which
turns it into a :class:`Diagnostic` for the offending function and moves on
to the next one.

Unresolved calls, missing function bodies, short JNI address computations
and call cycles are *not* errors; the analyses treat them as "no evidence".
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class DiagnosticSeverity(Enum):
    """cppcheck-compatible severity levels."""
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class AuditError(Exception):
    """Base class for every error raised by jniaudit."""


class IRParseError(AuditError):
    """Raised when an IR dump cannot be mapped onto the IR model."""

    def __init__(self, message: str, context: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            return f"{self.context}: {self.message}"
        return self.message


class MalformedIRError(AuditError):
    """A function's IR does not have the shape the analyses rely on.

    ``function`` is the name of the function whose body is malformed; it
    may be filled in later by the traversal engine, which knows which frame
    was being scanned when the problem surfaced.
    """

    def __init__(self, message: str, function: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.function = function

    def __str__(self) -> str:
        if self.function:
            return f"{self.function}: {self.message}"
        return self.message


@dataclass(frozen=True)
class Diagnostic:
    """
    A problem found while auditing one boundary-entry function.

    Attributes
    ----------
    error_id : Unique identifier (e.g., "malformedIR")
    message  : Human-readable description
    severity : DiagnosticSeverity
    function : Boundary-entry function being audited
    analysis : Name of the analysis that was running ("" if none)
    evidence : Machine-readable details for downstream tooling
    """
    error_id: str
    message: str
    severity: DiagnosticSeverity
    function: str
    analysis: str = ""
    evidence: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_malformed(
        cls, entry: str, analysis: str, exc: MalformedIRError
    ) -> "Diagnostic":
        evidence: Dict[str, Any] = {}
        if exc.function and exc.function != entry:
            evidence["in_function"] = exc.function
        return cls(
            error_id="malformedIR",
            message=exc.message,
            severity=DiagnosticSeverity.ERROR,
            function=entry,
            analysis=analysis,
            evidence=evidence,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "function": self.function,
            "severity": self.severity.value,
            "message": self.message,
            "errorId": self.error_id,
        }
        if self.analysis:
            result["analysis"] = self.analysis
        if self.evidence:
            result["evidence"] = dict(self.evidence)
        return result

    def to_json_str(self) -> str:
        """Single-line JSON string."""
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        return (
            f"{self.function}: {self.severity.value}: "
            f"{self.message} [{self.error_id}]"
        )


__all__ = [
    "AuditError",
    "IRParseError",
    "MalformedIRError",
    "Diagnostic",
    "DiagnosticSeverity",
]
