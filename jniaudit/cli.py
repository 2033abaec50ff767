#!/usr/bin/env python3
"""jniaudit/cli.py — command-line entry point for the JNI boundary audit.

Usage examples
--------------
    # All four analyses, one "name pure ptr cast dyn" row per entry
    jniaudit all libnative.sexp

    # A single analysis, appending sentences to a chosen log
    jniaudit purity libnative.sexp --log purity.txt

    # Treat calls back onto the current path as evidence
    jniaudit all libnative.sexp --cycle-policy conservative

    # List the boundary-entry functions of a dump
    jniaudit entries libnative.sexp --prefix Java_com_example_

    # Print the JNI memory-management slot table
    jniaudit slots

Results go to stdout and are appended to the mode's log file
(``AllLog.txt``, ``FunctionalPurityLog.txt``, ...) in ``--log-dir``.
Diagnostics for malformed functions go to stderr.

Exit codes
----------
    0   Success.
    1   One or more functions had malformed IR and were skipped.
    2   Infrastructure failure (missing file, unreadable dump, etc.).
    3   Findings present and ``--fail-on-findings`` was given.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence

from jniaudit import __version__
from jniaudit.config import AnalysisKind, AuditConfig, CyclePolicy
from jniaudit.driver import AuditDriver, AuditReport, LogFileSink
from jniaudit.errors import IRParseError
from jniaudit.irparser import load_program
from jniaudit.runtime_table import slot_table

_log = logging.getLogger("jniaudit")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2
EXIT_VIOLATION: int = 3


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``jniaudit`` logger.

    Parameters
    ----------
    verbosity:
        0 → WARNING, 1 → INFO, 2+ → DEBUG.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("jniaudit")
    root.setLevel(level)
    root.addHandler(handler)


def _config_from_args(args: argparse.Namespace) -> AuditConfig:
    policy = getattr(args, "cycle_policy", None)
    return AuditConfig().with_overrides(
        entry_prefix=getattr(args, "prefix", None),
        cycle_policy=CyclePolicy(policy) if policy else None,
        log_dir=Path(args.log_dir) if getattr(args, "log_dir", None) else None,
    )


def _emit_report(report: AuditReport, fmt: str) -> None:
    """Results to stdout, diagnostics to stderr."""
    rows = report.records or report.verdicts
    for row in rows:
        if fmt == "json":
            print(json.dumps(row.to_dict()))
        elif hasattr(row, "to_line"):
            print(row.to_line())
        else:
            print(row.sentence())
    for diag in report.diagnostics:
        if fmt == "json":
            print(diag.to_json_str(), file=sys.stderr)
        else:
            print(str(diag), file=sys.stderr)


# ===========================================================================
# Sub-command implementations
# ===========================================================================

def cmd_audit(args: argparse.Namespace) -> int:
    """Run ``all`` or one analysis over every dump given."""
    config = _config_from_args(args)
    mode = args.command
    kinds = None if mode == "all" else [AnalysisKind(mode)]
    log_path = config.log_path(mode, args.log)
    sink = LogFileSink(log_path, fmt=args.format)
    driver = AuditDriver(config, sink)

    infra_failure = False
    errors = 0
    findings = 0
    for dump in args.dumps:
        try:
            program = load_program(dump)
        except IRParseError as exc:
            _log.error("%s", exc)
            infra_failure = True
            continue
        report = driver.run(program, kinds)
        _emit_report(report, args.format)
        _log.info("%s: %s", dump, report.summary())
        errors += report.error_count
        findings += report.finding_count

    _log.info("results appended to %s", log_path)
    if infra_failure:
        return EXIT_INFRA
    if errors:
        return EXIT_ERROR
    if findings and args.fail_on_findings:
        return EXIT_VIOLATION
    return EXIT_OK


def cmd_entries(args: argparse.Namespace) -> int:
    """List the boundary-entry functions of each dump."""
    config = _config_from_args(args)
    driver = AuditDriver(config)
    status = EXIT_OK
    for dump in args.dumps:
        try:
            program = load_program(dump)
        except IRParseError as exc:
            _log.error("%s", exc)
            status = EXIT_INFRA
            continue
        for fn in driver.entry_functions(program):
            print(fn.name)
    return status


def cmd_slots(args: argparse.Namespace) -> int:
    """Print the JNI memory-management slot table."""
    rows = slot_table()
    if args.format == "json":
        print(json.dumps([
            {"index": i, "name": n, "family": f, "role": r}
            for i, n, f, r in rows
        ], indent=2))
        return EXIT_OK
    for index, name, family, role in rows:
        print(f"{index:4d}  {name:<36s} {family:<10s} {role}")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jniaudit",
        description="Audit JNI boundary-entry functions of a native library.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              jniaudit all libnative.sexp
              jniaudit purity libnative.sexp --log purity.txt
              jniaudit entries libnative.sexp
              jniaudit slots
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_dump_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "dumps",
            nargs="+",
            metavar="DUMP",
            help="IR dump file(s) (S-expression form).",
        )
        p.add_argument(
            "--prefix",
            default=None,
            metavar="PREFIX",
            help="Name prefix of boundary-entry functions (default: Java_).",
        )

    def _add_audit_args(p: argparse.ArgumentParser) -> None:
        _add_dump_args(p)
        p.add_argument(
            "--cycle-policy",
            choices=[c.value for c in CyclePolicy],
            default=None,
            help="Meaning of a call back onto the current path "
                 "(default: no-evidence).",
        )
        g = p.add_argument_group("output")
        g.add_argument(
            "--log",
            default=None,
            metavar="FILE",
            help="Append results to FILE instead of the default log.",
        )
        g.add_argument(
            "--log-dir",
            default=None,
            metavar="DIR",
            help="Directory for the default log files (default: .).",
        )
        g.add_argument(
            "-f", "--format",
            choices=list(LogFileSink.FORMATS),
            default="text",
            help="Row format for stdout and the log (default: text).",
        )
        g.add_argument(
            "--fail-on-findings",
            action="store_true",
            help="Exit with 3 when any entry has an unsafe answer.",
        )
        p.set_defaults(func=cmd_audit)

    p_all = subparsers.add_parser(
        "all",
        help="Run all four analyses.",
        description="One 'name pure ptr cast dyn' row per boundary entry.",
    )
    _add_audit_args(p_all)

    single_help = {
        AnalysisKind.PURITY: "Check functional purity.",
        AnalysisKind.POINTER_ARITHMETIC: "Check for pointer arithmetic.",
        AnalysisKind.TYPE_CASTS: "Check for integer/pointer casts.",
        AnalysisKind.DYNAMIC_MEMORY: "Check for dynamic memory management.",
    }
    for kind, help_text in single_help.items():
        _add_audit_args(subparsers.add_parser(kind.value, help=help_text))

    p_entries = subparsers.add_parser(
        "entries",
        help="List boundary-entry functions.",
    )
    _add_dump_args(p_entries)
    p_entries.set_defaults(func=cmd_entries)

    p_slots = subparsers.add_parser(
        "slots",
        help="Print the JNI memory-management slot table.",
    )
    p_slots.add_argument(
        "-f", "--format",
        choices=["text", "json"],
        default="text",
    )
    p_slots.set_defaults(func=cmd_slots)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the jniaudit CLI and return its exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except OSError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
