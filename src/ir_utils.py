#!/usr/bin/env python3
"""
Text-level helpers for LLVM IR modules: function extraction and cleanup.
"""

import re
from typing import Iterable, List, Optional, Tuple

from data_types import Lines


_MODULE_HEADER_PREFIXES = (
    "; ModuleID",
    "source_filename",
    "target datalayout",
    "target triple",
)

_DEFINE_NAME_PATTERN = re.compile(r'^define\b[^@]*@(?:"(?P<quoted>[^"]+)"|(?P<plain>[-\w$.]+))\s*\(')


def _brace_delta(line: str) -> int:
    return line.count("{") - line.count("}")


def _function_start(lines: Lines, func_name: str) -> Optional[int]:
    pattern = re.compile(
        r'^define\b[^@]*@(?:"' + re.escape(func_name) + r'"|' + re.escape(func_name) + r')\s*\('
    )
    for i, line in enumerate(lines):
        if line.startswith("define") and pattern.match(line):
            return i
    return None


def extract_function(ir_lines: Lines, func_name: str) -> Optional[Lines]:
    """
    Extract one function definition from module IR.

    The slice starts at any comment lines directly above the `define`
    (e.g. "; Function Attrs: ...") and ends at the brace closing the body.
    Returns None when the function is not defined in the module.
    """
    start = _function_start(ir_lines, func_name)
    if start is None:
        return None

    first = start
    while first > 0 and ir_lines[first - 1].startswith(";"):
        first -= 1

    depth = 0
    for end in range(start, len(ir_lines)):
        line = ir_lines[end]
        depth += _brace_delta(line)
        if depth <= 0 and "}" in line:
            return tuple(ir_lines[first:end + 1])

    # Unterminated body (truncated trace): keep what is there
    return tuple(ir_lines[first:])


def split_scc_target(target: str) -> List[str]:
    """CGSCC targets name every function of the SCC: "foo, bar" -> ["foo", "bar"]"""
    return [name.strip() for name in target.split(",") if name.strip()]


def extract_functions(ir_lines: Lines, target: str) -> Lines:
    """
    Extract every function a scope target names, in order.
    Missing functions (not yet created or already deleted) contribute nothing.
    """
    whole = extract_function(ir_lines, target)
    if whole is not None:
        return whole

    extracted: List[str] = []
    for name in split_scc_target(target):
        func = extract_function(ir_lines, name)
        if func is None:
            continue
        if extracted:
            extracted.append("")
        extracted.extend(func)
    return tuple(extracted)


def function_names(ir_lines: Iterable[str]) -> List[str]:
    """Names of all functions defined in the module, in order"""
    names = []
    for line in ir_lines:
        match = _DEFINE_NAME_PATTERN.match(line)
        if match:
            names.append(match.group('quoted') or match.group('plain'))
    return names


def clean_ir(ir_lines: Lines) -> Lines:
    """
    Keep only function definitions.
    Drops the module header, declarations, attribute groups and metadata.
    """
    cleaned: List[str] = []
    in_function = False
    depth = 0

    for line in ir_lines:
        if in_function:
            cleaned.append(line)
            depth += _brace_delta(line)
            if depth <= 0 and "}" in line:
                in_function = False
        elif line.startswith("define "):
            in_function = True
            depth = _brace_delta(line)
            cleaned.append(line)
        elif line.startswith(_MODULE_HEADER_PREFIXES):
            continue

    return tuple(cleaned)


def line_changes(before: Lines, after: Lines) -> Tuple[int, int, int]:
    """
    Positional line comparison: (lines_before, lines_after, lines_changed).
    Cheap and monotonic, not an edit distance.
    """
    changed = 0
    for i in range(max(len(before), len(after))):
        before_line = before[i] if i < len(before) else None
        after_line = after[i] if i < len(after) else None
        if before_line != after_line:
            changed += 1
    return len(before), len(after), changed
