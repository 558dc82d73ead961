from __future__ import annotations

import json

import pytest

from conftest import INITIAL_IR, AFTER_INSTCOMBINE

from data_types import InspectorConfig
from inspector import PipelineInspector
from pass_grouping import toggle_fold
from reporter import ReportGenerator
import session_codec


@pytest.fixture
def inspector(trace_text):
    inspector = PipelineInspector()
    inspector.load_trace(trace_text)
    return inspector


@pytest.fixture
def reporter():
    return ReportGenerator(InspectorConfig())


def test_pass_list_folded(inspector, reporter):
    lines = reporter.format_pass_list(inspector)

    assert lines[0] == "Optimization Pipeline (7 passes, 5 groups)"
    assert " *1. + [F] InstCombinePass (2 functions)" in lines
    assert "  2. [M] GlobalOptPass on [module]" in lines
    assert "  4. + [C] InlinerPass (1 functions)" in lines
    assert "  5. + [L] LICMPass (1 functions)" in lines
    assert len(lines) == 2 + 5


def test_pass_list_unfolded_marks_current(inspector, reporter):
    toggle_fold(inspector.groups()[2])

    lines = reporter.format_pass_list(inspector, current_index=5)

    assert ">*3. - [F] SimplifyCFGPass (2 functions)" in lines
    members = [line for line in lines if "#" in line]
    assert members[0].startswith(">*")
    assert members[0].endswith("#5 f2")
    assert members[1].endswith("#4 f1")


def test_pass_view_for_changed_pass(inspector, reporter):
    lines = reporter.format_pass_view(inspector, 1)

    assert lines[0].startswith("[Pass 1/7] InstCombinePass on f1")
    assert "Lines changed: 3" in lines
    assert "--- before/Initial -> f1" in lines


def test_pass_view_for_unchanged_pass(inspector, reporter):
    lines = reporter.format_pass_view(inspector, 3)
    assert lines[-1] == "Pass did not change the IR"
    assert reporter.format_pass_view(inspector, 99) == ["No pass at index 99"]


def test_json_report(inspector, reporter, tmp_path):
    inspector.compute_changes()
    report = reporter.build_report(inspector)
    path = tmp_path / "out" / "report.json"
    reporter.save_json_report(report, path)

    saved = json.loads(path.read_text())
    assert saved['summary']['total_passes'] == 7
    assert saved['summary']['changed_passes'] == 2
    assert saved['summary']['collapsed_groups'] == 4
    assert saved['passes'][0]['diff_stats'] == {'lines_before': 5, 'lines_after': 4, 'lines_changed': 3}
    assert saved['passes'][2]['scope'] == "module"


def test_diff_file(inspector, reporter, tmp_path):
    path = tmp_path / "diff.txt"
    reporter.write_diff_file(inspector, 5, path)

    text = path.read_text()
    assert text.startswith("LLVM Pipeline Pass Diff")
    assert "+  ret i32 %y" in text


def test_terminal_summary(inspector, reporter, capsys):
    reporter.print_terminal_summary(inspector)
    out = capsys.readouterr().out

    assert "Changed:          2" in out
    assert "First: #1 InstCombinePass on f1" in out
    assert "Last:  #5 SimplifyCFGPass on f2" in out


def test_quiet_summary_prints_nothing(inspector, capsys):
    ReportGenerator(InspectorConfig(quiet=True)).print_terminal_summary(inspector)
    assert capsys.readouterr().out == ""


def test_json_report_carries_tool_version(inspector, reporter):
    report = reporter.build_report(inspector)
    assert report['report_info']['tool_version'] == session_codec.TOOL_VERSION


def test_unscoped_member_row_shows_pass_name(reporter):
    inspector = PipelineInspector()
    inspector.load_trace("\n".join(
        ["*** IR Dump At Start ***", *INITIAL_IR]
        + ["*** IR Dump After InstCombinePass on f1 ***", *AFTER_INSTCOMBINE]
        + ["*** IR Dump After Instrument function entry/exit (post inlining) "
           "(post-inline-ee-instrument) omitted because no change ***"]
    ) + "\n")
    toggle_fold(inspector.groups()[1])

    lines = reporter.format_pass_list(inspector)

    assert "  2. - [?] post-inline-ee-instrument (1 functions)" in lines
    assert lines[-1].endswith("#2 post-inline-ee-instrument")
