"""
jniaudit/driver.py
══════════════════

Runs the boundary analyses over every boundary-entry function of a
:class:`~jniaudit.ir.Program` and hands the results to an output sink.

Two modes:

  run_analysis(program, kind)  one predicate, one :class:`Verdict` per entry
                               ("Java_Foo_bar is impure")
  run_all(program)             all four predicates, one
                               :class:`AnalysisRecord` per entry
                               ("Java_Foo_bar 0 1 0 1")

Every (entry, predicate) pair gets its own traversal; nothing but the
program is shared between them.  Results are written to the sink once an
entry is finished.  An entry whose IR turns out to be malformed yields a
:class:`~jniaudit.errors.Diagnostic` instead of a result, and the driver
continues with the next entry.

Sinks
─────
  MemorySink   keeps everything in dictionaries (tests, library use)
  LogFileSink  appends rows to a text file, never truncating it
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Union,
)

from jniaudit.config import AnalysisKind, AuditConfig
from jniaudit.errors import Diagnostic, DiagnosticSeverity, MalformedIRError
from jniaudit.ir import Function, Program
from jniaudit.predicates import PREDICATES, BasePredicate
from jniaudit.traversal import TraversalResult

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — RESULT MODEL
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class AnalysisRecord:
    """All four answers for one boundary-entry function."""
    function: str
    is_pure: bool
    has_pointer_arithmetic: bool
    has_type_casts: bool
    has_dynamic_memory: bool

    def to_line(self) -> str:
        """``name pure ptr cast dyn`` with 1/0 flags in that fixed order."""
        flags = (
            self.is_pure,
            self.has_pointer_arithmetic,
            self.has_type_casts,
            self.has_dynamic_memory,
        )
        return " ".join([self.function] + [str(int(f)) for f in flags])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "function": self.function,
            "pure": self.is_pure,
            "pointerArithmetic": self.has_pointer_arithmetic,
            "typeCasts": self.has_type_casts,
            "dynamicMemory": self.has_dynamic_memory,
        }


@dataclass(frozen=True)
class Verdict:
    """One predicate's answer for one boundary-entry function.

    ``positive`` is the raw predicate result ("evidence found"); for purity
    that means *impure*.
    """
    function: str
    analysis: AnalysisKind
    positive: bool
    text: str
    witness: TraversalResult = field(compare=False)

    def sentence(self) -> str:
        return self.text

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "function": self.function,
            "analysis": self.analysis.value,
            "positive": self.positive,
            "message": self.text,
        }
        if self.witness.positive:
            result["evidence"] = {
                "reason": self.witness.reason,
                "path": list(self.witness.path),
            }
        return result


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SINKS
# ═════════════════════════════════════════════════════════════════════════

class RecordSink(Protocol):

    def emit_record(self, record: AnalysisRecord) -> None:
        ...

    def emit_verdict(self, verdict: Verdict) -> None:
        ...

    def emit_diagnostic(self, diagnostic: Diagnostic) -> None:
        ...


class MemorySink:
    """Collects results in memory, keyed by function name."""

    def __init__(self) -> None:
        self.records: Dict[str, AnalysisRecord] = {}
        self.verdicts: Dict[str, Dict[AnalysisKind, Verdict]] = {}
        self.diagnostics: List[Diagnostic] = []

    def emit_record(self, record: AnalysisRecord) -> None:
        self.records[record.function] = record

    def emit_verdict(self, verdict: Verdict) -> None:
        self.verdicts.setdefault(verdict.function, {})[verdict.analysis] = verdict

    def emit_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    def __getitem__(self, function: str) -> AnalysisRecord:
        return self.records[function]

    def __contains__(self, function: object) -> bool:
        return function in self.records or function in self.verdicts


class LogFileSink:
    """Appends one row per result to *path*.

    ``fmt="text"`` writes the classic rows (``name 1 0 0 1`` or
    ``name is pure``); ``fmt="json"`` writes one JSON object per line.
    Diagnostics are not written to the log; they are kept in
    :attr:`diagnostics` for the caller to report.
    """

    FORMATS = ("text", "json")

    def __init__(self, path: Union[str, Path], fmt: str = "text") -> None:
        if fmt not in self.FORMATS:
            raise ValueError(f"unknown log format {fmt!r}")
        self.path = Path(path)
        self.fmt = fmt
        self.diagnostics: List[Diagnostic] = []

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as fh:
            fh.write(line + "\n")

    def emit_record(self, record: AnalysisRecord) -> None:
        if self.fmt == "json":
            self._append(json.dumps(record.to_dict()))
        else:
            self._append(record.to_line())

    def emit_verdict(self, verdict: Verdict) -> None:
        if self.fmt == "json":
            self._append(json.dumps(verdict.to_dict()))
        else:
            self._append(verdict.sentence())

    def emit_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — DRIVER
# ═════════════════════════════════════════════════════════════════════════

@dataclass
class AuditReport:
    """What one driver invocation produced (also sent to the sink)."""
    records: List[AnalysisRecord] = field(default_factory=list)
    verdicts: List[Verdict] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return sum(
            1 for d in self.diagnostics
            if d.severity is DiagnosticSeverity.ERROR
        )

    @property
    def finding_count(self) -> int:
        """Entries with at least one unsafe answer."""
        unsafe = {v.function for v in self.verdicts if v.positive}
        unsafe.update(
            r.function for r in self.records
            if not r.is_pure or r.has_pointer_arithmetic
            or r.has_type_casts or r.has_dynamic_memory
        )
        return len(unsafe)

    def summary(self) -> str:
        analysed = self.stats.get("entries", 0)
        return (
            f"Audit complete: {analysed} boundary entr"
            f"{'y' if analysed == 1 else 'ies'}, "
            f"{self.finding_count} with findings, "
            f"{self.error_count} malformed "
            f"({self.stats.get('elapsed_ms', 0.0):.1f}ms)"
        )


class AuditDriver:
    """Finds boundary-entry functions and runs the predicates on them.

    Parameters
    ----------
    config : AuditConfig — entry prefix, signatures, cycle policy
    sink   : RecordSink — receives results as entries complete
             (defaults to a fresh :class:`MemorySink`)
    """

    def __init__(
        self,
        config: Optional[AuditConfig] = None,
        sink: Optional[RecordSink] = None,
    ) -> None:
        self.config = config or AuditConfig()
        self.sink: RecordSink = sink if sink is not None else MemorySink()

    def entry_functions(self, program: Program) -> List[Function]:
        return program.entry_functions(self.config.entry_prefix)

    def _predicate(self, kind: AnalysisKind) -> BasePredicate:
        return PREDICATES[kind](self.config)

    def _report_malformed(
        self,
        report: AuditReport,
        entry: Function,
        kind: AnalysisKind,
        exc: MalformedIRError,
    ) -> None:
        logger.warning("skipping %s (%s): %s", entry.name, kind.value, exc)
        diag = Diagnostic.from_malformed(entry.name, kind.value, exc)
        report.diagnostics.append(diag)
        self.sink.emit_diagnostic(diag)

    def run_analysis(
        self,
        program: Program,
        kind: Union[AnalysisKind, str],
    ) -> AuditReport:
        """Single-predicate mode."""
        kind = AnalysisKind(kind)
        report = AuditReport()
        t0 = time.monotonic()
        entries = self.entry_functions(program)
        for entry in entries:
            predicate = self._predicate(kind)
            try:
                witness = predicate.run(entry)
            except MalformedIRError as exc:
                self._report_malformed(report, entry, kind, exc)
                continue
            verdict = Verdict(
                function=entry.name,
                analysis=kind,
                positive=witness.positive,
                text=predicate.sentence(entry.name, witness.positive),
                witness=witness,
            )
            logger.info("%s", verdict.text)
            if witness.positive:
                logger.debug("  %s", witness.describe())
            report.verdicts.append(verdict)
            self.sink.emit_verdict(verdict)
        report.stats["entries"] = len(entries)
        report.stats["elapsed_ms"] = (time.monotonic() - t0) * 1000.0
        return report

    def run_all(self, program: Program) -> AuditReport:
        """Combined mode: all four predicates, one record per entry."""
        report = AuditReport()
        t0 = time.monotonic()
        entries = self.entry_functions(program)
        for entry in entries:
            answers: Dict[AnalysisKind, bool] = {}
            for kind in PREDICATES:
                try:
                    answers[kind] = self._predicate(kind).run(entry).positive
                except MalformedIRError as exc:
                    self._report_malformed(report, entry, kind, exc)
                    break
            else:
                record = AnalysisRecord(
                    function=entry.name,
                    is_pure=not answers[AnalysisKind.PURITY],
                    has_pointer_arithmetic=answers[AnalysisKind.POINTER_ARITHMETIC],
                    has_type_casts=answers[AnalysisKind.TYPE_CASTS],
                    has_dynamic_memory=answers[AnalysisKind.DYNAMIC_MEMORY],
                )
                logger.info("%s", record.to_line())
                report.records.append(record)
                self.sink.emit_record(record)
        report.stats["entries"] = len(entries)
        report.stats["elapsed_ms"] = (time.monotonic() - t0) * 1000.0
        return report

    def run(
        self,
        program: Program,
        kinds: Optional[Sequence[AnalysisKind]] = None,
    ) -> AuditReport:
        """``run_all`` when *kinds* is ``None``, else each kind in turn."""
        if kinds is None:
            return self.run_all(program)
        combined = AuditReport()
        for kind in kinds:
            partial = self.run_analysis(program, kind)
            combined.verdicts.extend(partial.verdicts)
            combined.diagnostics.extend(partial.diagnostics)
            combined.stats["entries"] = partial.stats["entries"]
            combined.stats["elapsed_ms"] = (
                combined.stats.get("elapsed_ms", 0.0)
                + partial.stats["elapsed_ms"]
            )
        return combined


__all__ = [
    "AnalysisRecord",
    "Verdict",
    "RecordSink",
    "MemorySink",
    "LogFileSink",
    "AuditReport",
    "AuditDriver",
]
