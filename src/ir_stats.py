#!/usr/bin/env python3
"""
Instruction-level statistics for LLVM IR snapshots.
"""

import re
from typing import Dict, Iterable

STAT_KEYS = (
    'instructions',
    'basic_blocks',
    'functions',
    'phi_nodes',
    'calls',
    'loads',
    'stores',
)

_LABEL_PATTERN = re.compile(r'^[\w.$-]+:\s*(;.*)?$')
_INSTRUCTION_PATTERN = re.compile(
    r'^\s+(%|store\b|ret\b|br\b|call\b|invoke\b|switch\b|unreachable\b|tail call\b|musttail call\b)'
)
_LOAD_PATTERN = re.compile(r'^\s+%\S+\s*=\s*load\b')


def count(ir_lines: Iterable[str]) -> Dict[str, int]:
    """Count functions, blocks and selected instruction kinds"""
    stats = dict.fromkeys(STAT_KEYS, 0)

    for line in ir_lines:
        if line.startswith("define "):
            stats['functions'] += 1
            continue

        if _LABEL_PATTERN.match(line):
            stats['basic_blocks'] += 1
            continue

        if not _INSTRUCTION_PATTERN.match(line):
            continue

        stats['instructions'] += 1
        if " phi " in line:
            stats['phi_nodes'] += 1
        if "call " in line or "invoke " in line:
            stats['calls'] += 1
        if _LOAD_PATTERN.match(line):
            stats['loads'] += 1
        if line.lstrip().startswith("store"):
            stats['stores'] += 1

    return stats


def delta(before: Dict[str, int], after: Dict[str, int]) -> Dict[str, int]:
    return {key: value - before.get(key, 0) for key, value in after.items()}


def format_stats(stats: Dict[str, int]) -> str:
    return (
        f"Fns: {stats['functions']} | BBs: {stats['basic_blocks']} | "
        f"Insts: {stats['instructions']} | Phis: {stats['phi_nodes']} | "
        f"Calls: {stats['calls']} | Loads: {stats['loads']} | Stores: {stats['stores']}"
    )


def format_compact(stats: Dict[str, int]) -> str:
    return f"Insts: {stats['instructions']} | BBs: {stats['basic_blocks']} | Fns: {stats['functions']}"


def _format_change(value: int, change: int) -> str:
    if change == 0:
        return f"{value}"
    if change > 0:
        return f"{value} (+{change})"
    return f"{value} ({change})"


def format_with_delta(stats: Dict[str, int], change: Dict[str, int]) -> str:
    """Compact form annotated with the change from the previous pass"""
    return (
        f"Insts: {_format_change(stats['instructions'], change.get('instructions', 0))} | "
        f"BBs: {_format_change(stats['basic_blocks'], change.get('basic_blocks', 0))} | "
        f"Fns: {_format_change(stats['functions'], change.get('functions', 0))}"
    )
