#!/usr/bin/env python3
"""
IRNormalizer - Presentation filters for resolved LLVM IR snapshots
Strips debug metadata after resolution; snapshots themselves stay verbatim.
"""

import re
import logging
from typing import List, Tuple

from data_types import InspectorConfig, Lines


class IRNormalizer:
    """
    Filters applied to IR lines before they are shown or compared.

    Debug-metadata filtering removes:
    - Metadata definitions (lines starting with !)
    - Debug records (#dbg_value, #dbg_declare, ...)
    - Calls to llvm.dbg.* intrinsics
    - ", !dbg !N" attachments on instructions
    """

    def __init__(self, config: InspectorConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

        # Pre-compile regex patterns for performance
        self._compile_patterns()

    def _compile_patterns(self):
        """Compile regex patterns for filtering"""

        # Metadata lines: !0 = !DIFile(...), !llvm.dbg.cu = !{!0}
        self.metadata_pattern = re.compile(r'^!')

        # Debug records printed by newer LLVM: #dbg_value(...)
        self.debug_record_pattern = re.compile(r'^\s+#dbg_\w+\(')

        # Debug intrinsics: call void @llvm.dbg.value(...)
        self.debug_intrinsic_pattern = re.compile(r'@llvm\.dbg\.\w+\(')

        # Debug location attachments: , !dbg !123
        self.debug_attachment_pattern = re.compile(r', !dbg ![0-9]+')

    def filter_debug_metadata(self, ir_lines: Lines) -> Tuple[Lines, int]:
        """
        Remove debug metadata from IR lines.
        Returns (filtered_lines, removed_line_count)
        """
        filtered: List[str] = []
        removed = 0

        for line in ir_lines:
            if self.metadata_pattern.match(line) or self.debug_record_pattern.match(line):
                removed += 1
                continue

            if self.debug_intrinsic_pattern.search(line) and line.lstrip().startswith(("call", "tail call")):
                removed += 1
                continue

            filtered.append(self.debug_attachment_pattern.sub('', line))

        if removed:
            self.logger.debug(f"Filtered debug metadata: {len(ir_lines)} -> {len(filtered)} lines")
        return tuple(filtered), removed

    def present(self, ir_lines: Lines) -> Lines:
        """Apply the configured presentation filters"""
        if self.config.strip_debug_metadata:
            return self.filter_debug_metadata(ir_lines)[0]
        return ir_lines

    def normalize_for_compare(self, ir_lines: Lines) -> Lines:
        """Collapse whitespace and drop blank lines, for layout-insensitive equality"""
        normalized = []
        for line in ir_lines:
            line = re.sub(r'\s+', ' ', line).strip()
            if line:
                normalized.append(line)
        return tuple(normalized)

    def get_filter_stats(self, original: Lines, filtered: Lines) -> dict:
        """Get statistics about a filtering pass"""
        original_lines = len(original)
        filtered_lines = len(filtered)

        return {
            'original_lines': original_lines,
            'filtered_lines': filtered_lines,
            'lines_removed': original_lines - filtered_lines,
            'reduction_percent': ((original_lines - filtered_lines) / original_lines * 100) if original_lines > 0 else 0
        }
