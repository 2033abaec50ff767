# tests/test_driver.py
"""
Tests for the audit driver: entry discovery, result records, sinks and
malformed-function diagnostics.
"""

import json
from unittest.mock import MagicMock

import pytest

from jniaudit.config import AnalysisKind, AuditConfig, CyclePolicy
from jniaudit.driver import (
    AnalysisRecord,
    AuditDriver,
    LogFileSink,
    MemorySink,
)
from jniaudit.errors import DiagnosticSeverity
from jniaudit.irparser import parse_module
from tests.conftest import (
    CYCLE_SEXP,
    MALFORMED_SEXP,
    MIXED_ROWS,
    MIXED_SEXP,
    define,
    inttoptr,
    program,
    ret,
)


class TestAnalysisRecord:

    def test_line_format(self):
        rec = AnalysisRecord("Java_A_b", True, False, True, False)
        assert rec.to_line() == "Java_A_b 1 0 1 0"

    def test_dict(self):
        rec = AnalysisRecord("Java_A_b", False, True, False, True)
        assert rec.to_dict() == {
            "function": "Java_A_b",
            "pure": False,
            "pointerArithmetic": True,
            "typeCasts": False,
            "dynamicMemory": True,
        }


class TestRunAll:

    def test_mixed_rows(self):
        sink = MemorySink()
        report = AuditDriver(sink=sink).run_all(parse_module(MIXED_SEXP))
        assert [r.to_line() for r in report.records] == MIXED_ROWS
        assert sink["Java_Mixed_alloc"].has_dynamic_memory
        assert "not_an_entry" not in sink
        assert report.stats["entries"] == len(MIXED_ROWS)

    def test_one_record_per_entry(self):
        prog = program(define("Java_A_a", ret()), define("Java_B_b", inttoptr()))
        report = AuditDriver().run_all(prog)
        assert [r.function for r in report.records] == ["Java_A_a", "Java_B_b"]
        assert report.finding_count == 1

    def test_custom_prefix(self):
        prog = program(define("Java_A_a", ret()), define("native_b", ret()))
        driver = AuditDriver(AuditConfig(entry_prefix="native_"))
        assert [f.name for f in driver.entry_functions(prog)] == ["native_b"]

    def test_cycles_terminate(self):
        prog = parse_module(CYCLE_SEXP)
        report = AuditDriver().run_all(prog)
        assert [r.to_line() for r in report.records] == ["Java_Cycle_entry 1 0 0 0"]

    def test_cycles_conservative(self):
        config = AuditConfig(cycle_policy=CyclePolicy.CONSERVATIVE)
        report = AuditDriver(config).run_all(parse_module(CYCLE_SEXP))
        assert [r.to_line() for r in report.records] == ["Java_Cycle_entry 0 1 1 1"]

    def test_sink_called_per_entry(self):
        sink = MagicMock()
        AuditDriver(sink=sink).run_all(parse_module(MIXED_SEXP))
        assert sink.emit_record.call_count == len(MIXED_ROWS)
        sink.emit_diagnostic.assert_not_called()

    def test_summary(self):
        report = AuditDriver().run_all(parse_module(MIXED_SEXP))
        text = report.summary()
        assert text.startswith("Audit complete: 6 boundary entries, 5 with findings, 0 malformed")


class TestRunAnalysis:

    def test_sentences(self):
        report = AuditDriver().run_analysis(parse_module(MIXED_SEXP), "purity")
        assert [v.sentence() for v in report.verdicts] == [
            "Java_Mixed_pure is pure",
            "Java_Mixed_alloc is impure",
            "Java_Mixed_offset is pure",
            "Java_Mixed_cast is pure",
            "Java_Mixed_callback is impure",
            "Java_Mixed_counter is impure",
        ]

    def test_verdict_evidence(self):
        report = AuditDriver().run_analysis(
            parse_module(MIXED_SEXP), AnalysisKind.DYNAMIC_MEMORY)
        alloc = [v for v in report.verdicts if v.positive]
        assert len(alloc) == 1
        data = alloc[0].to_dict()
        assert data["message"] == "Java_Mixed_alloc has dynamic memory allocation"
        assert data["evidence"] == {"reason": "calls malloc",
                                    "path": ["Java_Mixed_alloc"]}

    def test_memory_sink_verdicts(self):
        sink = MemorySink()
        AuditDriver(sink=sink).run_analysis(parse_module(MIXED_SEXP), "type-casts")
        verdict = sink.verdicts["Java_Mixed_cast"][AnalysisKind.TYPE_CASTS]
        assert verdict.text == "Java_Mixed_cast has typecasts"
        assert "Java_Mixed_cast" in sink

    def test_run_several_kinds(self):
        kinds = [AnalysisKind.TYPE_CASTS, AnalysisKind.POINTER_ARITHMETIC]
        report = AuditDriver().run(parse_module(MIXED_SEXP), kinds)
        assert len(report.verdicts) == 2 * len(MIXED_ROWS)
        assert report.records == []

    def test_unknown_kind(self):
        with pytest.raises(ValueError):
            AuditDriver().run_analysis(parse_module(MIXED_SEXP), "aliasing")


class TestMalformed:

    def test_bad_entry_skipped_in_all_mode(self):
        sink = MemorySink()
        report = AuditDriver(sink=sink).run_all(parse_module(MALFORMED_SEXP))
        assert [r.function for r in report.records] == ["Java_Broken_fine"]
        assert len(report.diagnostics) == 1
        diag = report.diagnostics[0]
        assert diag.function == "Java_Broken_untyped"
        assert diag.error_id == "malformedIR"
        assert diag.severity is DiagnosticSeverity.ERROR
        assert diag.analysis == "pointer-arithmetic"
        assert sink.diagnostics == [diag]
        assert report.error_count == 1

    def test_single_mode_only_reports_affected_analysis(self):
        prog = parse_module(MALFORMED_SEXP)
        purity = AuditDriver().run_analysis(prog, "purity")
        assert len(purity.verdicts) == 2
        assert purity.diagnostics == []
        arith = AuditDriver().run_analysis(prog, "pointer-arithmetic")
        assert [v.function for v in arith.verdicts] == ["Java_Broken_fine"]
        assert len(arith.diagnostics) == 1

    def test_diagnostic_rendering(self):
        report = AuditDriver().run_all(parse_module(MALFORMED_SEXP))
        diag = report.diagnostics[0]
        assert str(diag).startswith("Java_Broken_untyped: error: ")
        assert str(diag).endswith("[malformedIR]")
        assert json.loads(diag.to_json_str())["errorId"] == "malformedIR"


class TestLogFileSink:

    def test_append_only(self, tmp_path):
        log = tmp_path / "AllLog.txt"
        prog = parse_module(MIXED_SEXP)
        for _ in range(2):
            AuditDriver(sink=LogFileSink(log)).run_all(prog)
        lines = log.read_text(encoding="utf-8").splitlines()
        assert lines == MIXED_ROWS + MIXED_ROWS

    def test_existing_content_kept(self, tmp_path):
        log = tmp_path / "FunctionalPurityLog.txt"
        log.write_text("earlier row\n", encoding="utf-8")
        AuditDriver(sink=LogFileSink(log)).run_analysis(parse_module(MIXED_SEXP), "purity")
        lines = log.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "earlier row"
        assert lines[1] == "Java_Mixed_pure is pure"

    def test_json_rows(self, tmp_path):
        log = tmp_path / "nested" / "all.jsonl"
        AuditDriver(sink=LogFileSink(log, fmt="json")).run_all(parse_module(MIXED_SEXP))
        rows = [json.loads(ln) for ln in log.read_text(encoding="utf-8").splitlines()]
        assert rows[0] == {
            "function": "Java_Mixed_pure",
            "pure": True,
            "pointerArithmetic": False,
            "typeCasts": False,
            "dynamicMemory": False,
        }

    def test_diagnostics_not_logged(self, tmp_path):
        log = tmp_path / "AllLog.txt"
        sink = LogFileSink(log)
        AuditDriver(sink=sink).run_all(parse_module(MALFORMED_SEXP))
        assert log.read_text(encoding="utf-8").splitlines() == ["Java_Broken_fine 1 0 0 0"]
        assert len(sink.diagnostics) == 1

    def test_bad_format(self, tmp_path):
        with pytest.raises(ValueError):
            LogFileSink(tmp_path / "x.txt", fmt="xml")

    def test_default_log_paths(self, tmp_path):
        config = AuditConfig(log_dir=tmp_path)
        assert config.log_path("all") == tmp_path / "AllLog.txt"
        assert config.log_path("dynamic-memory") == tmp_path / "DynamicMemoryLog.txt"
        assert str(config.log_path("purity", "custom.txt")) == "custom.txt"


class TestAuditConfig:

    def test_with_overrides_ignores_none(self):
        config = AuditConfig().with_overrides(entry_prefix="native_", cycle_policy=None)
        assert config.entry_prefix == "native_"
        assert config.cycle_policy is CyclePolicy.NO_EVIDENCE

    def test_with_overrides_unknown_field(self):
        with pytest.raises(TypeError):
            AuditConfig().with_overrides(colour="red")
