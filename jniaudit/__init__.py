"""jniaudit — safety audit of JNI native-boundary functions.

Answers four questions about every boundary-entry function (``Java_*``)
of a native library, following its resolved calls but never descending
into the Java runtime:

  * is it functionally pure?
  * does it perform pointer arithmetic?
  * does it cast between integers and pointers?
  * does it manage dynamic memory?

Submodules
----------
ir
    The intermediate representation: ``Program``, ``Function``,
    ``Instruction``, ``Value``, ``Type``.
irparser
    Loader for the S-expression IR dump (``sexpdata``).
runtime_table
    JNI table signatures, memory-management slots, allocator symbols.
classify
    Runtime-call and JNI-slot recognition, struct-pointer inspection.
traversal
    The shared interprocedural walk.
predicates
    The four analyses.
driver
    Entry-function discovery, result records and output sinks.
cli
    Command-line interface (``jniaudit`` / ``python -m jniaudit``).

Usage
-----
Command-line::

    jniaudit all libnative.sexp
    jniaudit purity libnative.sexp --log purity.txt
    jniaudit slots

Programmatic::

    from jniaudit import AuditDriver, load_program

    program = load_program("libnative.sexp")
    report = AuditDriver().run_all(program)
    for record in report.records:
        print(record.to_line())
"""

from __future__ import annotations

__version__: str = "0.1.0"

from jniaudit.config import AnalysisKind, AuditConfig, CyclePolicy
from jniaudit.driver import (
    AnalysisRecord,
    AuditDriver,
    AuditReport,
    LogFileSink,
    MemorySink,
    Verdict,
)
from jniaudit.errors import (
    AuditError,
    Diagnostic,
    DiagnosticSeverity,
    IRParseError,
    MalformedIRError,
)
from jniaudit.irparser import load_program, parse_module
from jniaudit.predicates import (
    has_dynamic_memory,
    has_pointer_arithmetic,
    has_type_casts,
    is_impure,
    is_pure,
)

__all__: list[str] = [
    "__version__",
    "AnalysisKind",
    "AuditConfig",
    "CyclePolicy",
    "AnalysisRecord",
    "AuditDriver",
    "AuditReport",
    "LogFileSink",
    "MemorySink",
    "Verdict",
    "AuditError",
    "Diagnostic",
    "DiagnosticSeverity",
    "IRParseError",
    "MalformedIRError",
    "load_program",
    "parse_module",
    "is_pure",
    "is_impure",
    "has_pointer_arithmetic",
    "has_type_casts",
    "has_dynamic_memory",
]
