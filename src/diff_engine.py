#!/usr/bin/env python3
"""
DiffEngine - Before/after views and change statistics for single passes
Narrows function-scoped passes to the function they ran on.
"""

import difflib
import logging
from typing import Iterator, Optional

from data_types import (
    Pipeline, PassRecord, DiffView, DiffStats, InspectorConfig, Lines,
)
from snapshot_resolver import SnapshotResolver
from normalizer import IRNormalizer
import ir_utils


INITIAL_NAME = "Initial"


class DiffEngine:
    """
    Answers "show me pass N" for one loaded pipeline.

    Snapshots come from the resolver; function/cgscc/loop passes are
    narrowed with ir_utils.extract_functions, and the configured
    presentation filters run last.
    """

    def __init__(self, pipeline: Pipeline, resolver: SnapshotResolver,
                 config: Optional[InspectorConfig] = None):
        self.pipeline = pipeline
        self.resolver = resolver
        self.config = config or InspectorConfig()
        self.normalizer = IRNormalizer(self.config)
        self.logger = logging.getLogger(__name__)

    def diff(self, index: int) -> DiffView:
        """Before/after IR for a pass, with line statistics"""
        record = self.pipeline.get_pass(index)
        if record is None:
            self.logger.warning(f"No pass at index {index} (pipeline has {self.pipeline.passes_count()})")
            return DiffView(
                before_name=INITIAL_NAME,
                before_lines=(),
                after_name="",
                after_lines=(),
                stats=DiffStats(0, 0, 0),
            )

        before = self.resolver.get_before(index)
        after = self.resolver.get_after(index)

        if record.scope.is_scoped:
            before = ir_utils.extract_functions(before, record.scope.target)
            after = ir_utils.extract_functions(after, record.scope.target)

        before = self.normalizer.present(before)
        after = self.normalizer.present(after)

        return DiffView(
            before_name=self._before_name(index, record),
            before_lines=before,
            after_name=record.display_name,
            after_lines=after,
            stats=self._stats(record, before, after),
        )

    def _before_name(self, index: int, record: PassRecord) -> str:
        if index <= 1:
            name = INITIAL_NAME
        else:
            name = self.pipeline.passes[index - 2].display_name

        if record.scope.is_scoped:
            return f"{name} -> {record.scope.target}"
        return name

    def _stats(self, record: PassRecord, before: Lines, after: Lines) -> DiffStats:
        if not record.changed:
            return DiffStats(lines_before=len(before), lines_after=len(after), lines_changed=0)

        lines_before, lines_after, lines_changed = ir_utils.line_changes(before, after)
        return DiffStats(lines_before, lines_after, lines_changed)

    def compute_diff_stats(self, index: int) -> DiffStats:
        """Statistics only; used by batch change computation"""
        return self.diff(index).stats

    def unified_diff(self, index: int, context: int = 3) -> Iterator[str]:
        """Unified diff of a pass's before/after view"""
        view = self.diff(index)
        return difflib.unified_diff(
            list(view.before_lines),
            list(view.after_lines),
            fromfile=f"before/{view.before_name}",
            tofile=f"after/{view.after_name}",
            n=context,
            lineterm='',
        )
