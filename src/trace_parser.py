#!/usr/bin/env python3
"""
TraceParser - Parses LLVM -print-changed / -print-after-all pipeline traces
Turns the raw trace text into a Pipeline of lazily referenced snapshots.
"""

import re
import logging
from pathlib import Path
from typing import List, Optional, Union

from data_types import (
    Pipeline, PassRecord, ParsedHeader, Scope, ScopeKind, InlineIR, IndexRef,
)


class TraceParser:
    """
    Parses the textual trace of an optimization pipeline.

    Handles both header spellings LLVM emits:
    - stderr:  *** IR Dump After PassName on target ***
    - opt -S:  ; *** IR Dump After PassName on target ***

    Only "After" dumps carry snapshots. With -print-module-scope every
    changed pass prints the full module, and unchanged passes print a
    single "omitted because no change" header, which becomes a
    back-reference to the last pass that carried IR.
    """

    START_INFO = "At Start"

    def __init__(self):
        self.logger = logging.getLogger(__name__)

        # Compiled regex patterns for performance
        self.header_pattern = re.compile(
            r'^\s*[;#]?\s*\*\*\* IR Dump (?P<info>.+?)\s*\*\*\*:?\s*$'
        )
        self.omitted_pattern = re.compile(
            r'\s+\(?(?:omitted because no change|filtered out)\)?$'
        )
        self.module_pattern = re.compile(r'^(?P<name>.+) on \[module\]$')
        self.cgscc_pattern = re.compile(r'^(?P<name>.+) on \((?P<target>.+)\)$')
        self.loop_pattern = re.compile(
            r'^(?P<name>.+) on loop .+? in function (?P<target>.+)$'
        )
        self.function_pattern = re.compile(r'^(?P<name>.+) on (?P<target>.+)$')
        self.legacy_id_pattern = re.compile(r'\(([^()]+)\)')

        self._reset_stats()

    def _reset_stats(self):
        self.stats = {
            'lines': 0,
            'headers': 0,
            'before_headers': 0,
            'anomalies': 0,
            'discarded_lines': 0,
        }

    def parse_file(self, input_file: Union[str, Path]) -> Pipeline:
        """Read a trace file and parse it"""
        input_file = Path(input_file)
        self.logger.info(f"Parsing pipeline trace: {input_file}")

        with open(input_file, 'r', encoding='utf-8', errors='replace') as f:
            text = f.read()

        return self.parse(text)

    def parse(self, trace_text: str) -> Pipeline:
        """
        Parse trace text into a Pipeline.
        Never raises on malformed input: unrecognized lines are IR body text.
        """
        self._reset_stats()

        initial: Optional[List[str]] = None
        passes: List[PassRecord] = []
        last_pass_with_ir = 0

        # "start", "after", "before" (discarded) or None (nothing open yet)
        section: Optional[str] = None
        header: Optional[ParsedHeader] = None
        body: List[str] = []

        def flush():
            nonlocal initial, last_pass_with_ir
            if section == "start":
                initial = body
            elif section == "after":
                pass_index = len(passes) + 1
                if header.omitted:
                    record = PassRecord(
                        name=header.pass_name,
                        scope=header.scope,
                        changed=False,
                        ir_ref=IndexRef(last_pass_with_ir),
                    )
                else:
                    record = PassRecord(
                        name=header.pass_name,
                        scope=header.scope,
                        changed=True,
                        ir_ref=InlineIR(tuple(body)),
                    )
                    last_pass_with_ir = pass_index
                passes.append(record)
            elif body:
                # Before-dumps and text ahead of the first marker have no owner
                self.stats['discarded_lines'] += len(body)

        for line in trace_text.splitlines():
            self.stats['lines'] += 1
            parsed = self.parse_pass_header(line)

            if parsed is None:
                body.append(line)
                continue

            self.stats['headers'] += 1
            flush()
            section, header, body = parsed.kind, parsed, []
            if parsed.kind == "before":
                self.stats['before_headers'] += 1

        # Trace may be cut off mid-dump: keep whatever was accumulated
        flush()

        if self.stats['discarded_lines']:
            self.logger.debug(f"Discarded {self.stats['discarded_lines']} lines outside After/Start dumps")

        pipeline = Pipeline(
            initial_snapshot=tuple(initial) if initial is not None else (),
            passes=tuple(passes),
        )
        self.logger.info(
            f"Parsed {pipeline.passes_count()} passes "
            f"({pipeline.changed_count()} changed, {self.stats['anomalies']} anomalies)"
        )
        return pipeline

    def parse_pass_header(self, line: str) -> Optional[ParsedHeader]:
        """
        Decode a pass boundary header.
        Returns None if the line is not a recognizable header.
        """
        if "IR Dump" not in line:
            return None

        match = self.header_pattern.match(line)
        if not match:
            return None

        info = match.group('info').strip()

        if info == self.START_INFO:
            return ParsedHeader(
                kind="start",
                pass_name="",
                scope=Scope.unknown(),
                omitted=False,
                original_line=line,
            )

        direction, _, rest = info.partition(' ')
        if direction not in ("After", "Before") or not rest.strip():
            # Looks like a marker but is not one we understand
            self.stats['anomalies'] += 1
            self.logger.debug(f"Unrecognized IR dump marker kept as body text: {line!r}")
            return None

        rest = rest.strip()
        omitted = False
        omitted_match = self.omitted_pattern.search(rest)
        if omitted_match:
            omitted = True
            rest = rest[:omitted_match.start()]

        pass_name, scope = self._decode_scope(rest)

        return ParsedHeader(
            kind="after" if direction == "After" else "before",
            pass_name=pass_name,
            scope=scope,
            omitted=omitted,
            original_line=line,
        )

    def _decode_scope(self, info: str):
        """Split "PassName on target" into (name, Scope), in priority order"""
        match = self.module_pattern.match(info)
        if match:
            return self._clean_pass_name(match.group('name')), Scope.module()

        match = self.cgscc_pattern.match(info)
        if match:
            return (self._clean_pass_name(match.group('name')),
                    Scope(ScopeKind.CGSCC, match.group('target').strip()))

        match = self.loop_pattern.match(info)
        if match:
            return (self._clean_pass_name(match.group('name')),
                    Scope(ScopeKind.LOOP, match.group('target').strip()))

        match = self.function_pattern.match(info)
        if match:
            return (self._clean_pass_name(match.group('name')),
                    Scope(ScopeKind.FUNCTION, match.group('target').strip()))

        # Legacy pass manager: "Pretty pass name (pass-id)", no target
        return self._extract_legacy_identifier(info), Scope.unknown()

    def _clean_pass_name(self, name: str) -> str:
        name = name.strip()
        if name.startswith("llvm::"):
            name = name[len("llvm::"):]
        return name

    def _extract_legacy_identifier(self, content: str) -> str:
        """
        Extract content from the last parentheses in the string.
        For example: "Instrument function entry/exit (post inlining) (post-inline-ee-instrument)"
        Should return: "post-inline-ee-instrument"
        """
        parentheses_matches = self.legacy_id_pattern.findall(content)
        if parentheses_matches:
            return parentheses_matches[-1].strip()
        return self._clean_pass_name(content)

    def get_parser_stats(self) -> dict:
        """Return statistics of the last parse for debugging"""
        return dict(self.stats)


def parse_trace(trace_text: str) -> Pipeline:
    """Convenience wrapper: parse trace text with a fresh parser"""
    return TraceParser().parse(trace_text)
