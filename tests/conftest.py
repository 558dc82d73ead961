from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from data_types import Pipeline, PassRecord, Scope, ScopeKind, InlineIR, IndexRef
from trace_parser import TraceParser


MODULE_HEADER = [
    "; ModuleID = 'test.c'",
    'source_filename = "test.c"',
    "",
]


def make_module(f1_body: List[str], f2_body: List[str]) -> tuple:
    return tuple(
        MODULE_HEADER
        + ["define i32 @f1(i32 %x) {", "entry:"] + f1_body + ["}", ""]
        + ["define i32 @f2(i32 %y) {", "entry:"] + f2_body + ["}"]
    )


F1_ORIGINAL = ["  %a = add i32 %x, 0", "  ret i32 %a"]
F1_SIMPLIFIED = ["  ret i32 %x"]
F2_ORIGINAL = ["  %b = mul i32 %y, 1", "  ret i32 %b"]
F2_SIMPLIFIED = ["  ret i32 %y"]

INITIAL_IR = make_module(F1_ORIGINAL, F2_ORIGINAL)
AFTER_INSTCOMBINE = make_module(F1_SIMPLIFIED, F2_ORIGINAL)
AFTER_SIMPLIFYCFG = make_module(F1_SIMPLIFIED, F2_SIMPLIFIED)


def build_trace() -> str:
    """
    Seven passes:
        1 InstCombinePass on f1            changed
        2 InstCombinePass on f2            omitted
        3 GlobalOptPass on [module]        omitted
        4 SimplifyCFGPass on f1            omitted
        5 SimplifyCFGPass on f2            changed
        6 InlinerPass on (f1, f2)          omitted
        7 LICMPass on loop ... in f1       omitted
    """
    lines = ["*** IR Dump At Start ***"]
    lines += INITIAL_IR
    lines += ["*** IR Dump After InstCombinePass on f1 ***"]
    lines += AFTER_INSTCOMBINE
    lines += [
        "*** IR Dump After InstCombinePass on f2 omitted because no change ***",
        "*** IR Dump After GlobalOptPass on [module] omitted because no change ***",
        "*** IR Dump After SimplifyCFGPass on f1 omitted because no change ***",
        "*** IR Dump After SimplifyCFGPass on f2 ***",
    ]
    lines += AFTER_SIMPLIFYCFG
    lines += [
        "*** IR Dump After InlinerPass on (f1, f2) omitted because no change ***",
        "*** IR Dump After LICMPass on loop %for.body in function f1 omitted because no change ***",
    ]
    return "\n".join(lines) + "\n"


def module_pass(name: str, changed: bool, ir_ref) -> PassRecord:
    return PassRecord(name=name, scope=Scope.module(), changed=changed, ir_ref=ir_ref)


def function_pass(name: str, target: str, changed: bool = False, index_ref: int = 0) -> PassRecord:
    ir_ref = InlineIR((f"; {name} {target}",)) if changed else IndexRef(index_ref)
    return PassRecord(name=name, scope=Scope(ScopeKind.FUNCTION, target), changed=changed, ir_ref=ir_ref)


def changed_at(count: int, changed_indices) -> Pipeline:
    """Module-pass pipeline where only the given 1-based indices changed"""
    passes = []
    last_with_ir = 0
    for index in range(1, count + 1):
        if index in changed_indices:
            passes.append(module_pass(f"Pass{index}", True, InlineIR((f"ir {index}",))))
            last_with_ir = index
        else:
            passes.append(module_pass(f"Pass{index}", False, IndexRef(last_with_ir)))
    return Pipeline(initial_snapshot=("ir 0",), passes=tuple(passes))


@pytest.fixture
def trace_text() -> str:
    return build_trace()


@pytest.fixture
def pipeline(trace_text: str) -> Pipeline:
    return TraceParser().parse(trace_text)


@pytest.fixture
def trace_file(tmp_path: Path, trace_text: str) -> Path:
    path = tmp_path / "trace.txt"
    path.write_text(trace_text)
    return path


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "test.c"
    path.write_text("int f1(int x) { return x + 0; }\nint f2(int y) { return y * 1; }\n")
    return path
