#!/usr/bin/env python3
"""
ReportGenerator - Plain-text and JSON reports for a loaded pipeline
Creates terminal summaries, grouped pass lists, diff files and JSON reports.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from data_types import (
    InspectorConfig, Pipeline, Group, StandaloneGroup, CollapsedGroup, ScopeKind,
)
from inspector import PipelineInspector
from pass_grouping import visible_rows
from session_codec import TOOL_VERSION

SCOPE_TAGS = {
    ScopeKind.MODULE: "M",
    ScopeKind.FUNCTION: "F",
    ScopeKind.CGSCC: "C",
    ScopeKind.LOOP: "L",
    ScopeKind.UNKNOWN: "?",
}


class ReportGenerator:
    """
    Generates reports for an inspected pipeline.

    Outputs:
    - Terminal summary
    - Grouped pass list (fold-aware)
    - Per-pass view with statistics and unified diff
    - JSON report of per-pass change statistics
    """

    def __init__(self, config: InspectorConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def build_report(self, inspector: PipelineInspector) -> Dict[str, Any]:
        """Summary plus per-pass records; diff_stats are included once computed"""
        pipeline = inspector.pipeline
        passes = []
        for index, record in enumerate(pipeline.passes, start=1):
            passes.append({
                'index': index,
                'name': record.name,
                'scope': record.scope.kind.value,
                'target': record.scope.target,
                'changed': record.changed,
                'diff_stats': record.diff_stats.to_dict() if record.diff_stats else None,
            })

        return {
            'report_info': {
                'timestamp': datetime.now().isoformat(),
                'tool_version': TOOL_VERSION,
                'report_type': 'llvm_pipeline',
            },
            'summary': self._build_summary(pipeline, inspector.groups()),
            'source': inspector.metadata.source,
            'passes': passes,
        }

    def _build_summary(self, pipeline: Pipeline, groups: List[Group]) -> Dict[str, Any]:
        return {
            'total_passes': pipeline.passes_count(),
            'changed_passes': pipeline.changed_count(),
            'unchanged_passes': pipeline.passes_count() - pipeline.changed_count(),
            'total_groups': len(groups),
            'collapsed_groups': sum(1 for g in groups if isinstance(g, CollapsedGroup)),
            'initial_snapshot_lines': len(pipeline.initial_snapshot),
        }

    def save_json_report(self, report: Dict[str, Any], file_path: Path):
        """Save report to JSON file"""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(report, f, indent=2, ensure_ascii=False)
            self.logger.info(f"Saved JSON report to: {file_path}")
        except OSError as e:
            self.logger.error(f"Failed to save JSON report: {e}")
            raise

    def format_pass_list(self, inspector: PipelineInspector, current_index: Optional[int] = None) -> List[str]:
        """
        Tree-style pass list:
            ">" marks the current pass, "*" marks passes/groups with changes,
            [M]/[F]/[C]/[L] tag the scope, folded groups show a member count.
        """
        pipeline = inspector.pipeline
        groups = inspector.groups()
        width = len(str(len(groups))) if groups else 1

        lines = [f"Optimization Pipeline ({pipeline.passes_count()} passes, {len(groups)} groups)", ""]

        for group, member in visible_rows(groups):
            if isinstance(group, StandaloneGroup):
                record = pipeline.passes[group.original_index - 1]
                marker = ">" if group.original_index == current_index else " "
                changed = "*" if record.changed else " "
                tag = SCOPE_TAGS[record.scope.kind]
                lines.append(f"{marker}{changed}{group.display_index:>{width}}. [{tag}] {record.display_name}")
            elif member is None:
                selected = any(m.original_index == current_index for m in group.members)
                marker = ">" if selected else " "
                changed = "*" if group.has_changes else " "
                fold_icon = "+" if group.folded else "-"
                tag = SCOPE_TAGS[group.scope_kind]
                lines.append(
                    f"{marker}{changed}{group.display_index:>{width}}. {fold_icon} [{tag}] "
                    f"{group.pass_name} ({len(group.members)} functions)"
                )
            else:
                record = pipeline.passes[member.original_index - 1]
                marker = ">" if member.original_index == current_index else " "
                changed = "*" if record.changed else " "
                label = member.target or record.display_name
                lines.append(f"{marker}{changed}{'':>{width}}    #{member.original_index} {label}")

        return lines

    def format_pass_view(self, inspector: PipelineInspector, index: int, context: int = 3) -> List[str]:
        """Header, statistics and unified diff for one pass"""
        view = inspector.show(index)
        record = inspector.get_pass(index)
        if record is None:
            return [f"No pass at index {index}"]

        lines = [
            inspector.stats_line(index),
            f"Before: {view.before_name} ({view.stats.lines_before} lines)",
            f"After:  {view.after_name} ({view.stats.lines_after} lines)",
        ]
        if not record.changed:
            lines.append("Pass did not change the IR")
            return lines

        lines.append(f"Lines changed: {view.stats.lines_changed}")
        lines.append("")
        lines.extend(inspector.engine.unified_diff(index, context))
        return lines

    def write_diff_file(self, inspector: PipelineInspector, index: int, file_path: Path):
        """Write a per-pass diff file"""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w', encoding='utf-8') as f:
                f.write("LLVM Pipeline Pass Diff\n")
                f.write("=======================\n\n")
                f.write(f"Generated: {datetime.now().isoformat()}\n\n")
                for line in self.format_pass_view(inspector, index):
                    f.write(line + "\n")
            self.logger.info(f"Saved diff file to: {file_path}")
        except OSError as e:
            self.logger.error(f"Failed to save diff file: {e}")
            raise

    def print_terminal_summary(self, inspector: PipelineInspector):
        """Print pipeline summary to terminal"""
        if self.config.quiet:
            return

        summary = self._build_summary(inspector.pipeline, inspector.groups())

        print("\n" + "=" * 60)
        print("LLVM OPTIMIZATION PIPELINE")
        print("=" * 60)
        print("SUMMARY:")
        print(f"   Passes:           {summary['total_passes']}")
        print(f"   Changed:          {summary['changed_passes']}")
        print(f"   Unchanged:        {summary['unchanged_passes']}")
        print(f"   Groups:           {summary['total_groups']} ({summary['collapsed_groups']} collapsed)")
        print(f"   Initial IR lines: {summary['initial_snapshot_lines']}")

        first = inspector.first_changed()
        last = inspector.last_changed()
        if first is not None:
            print("\nCHANGED RANGE:")
            print(f"   First: #{first} {inspector.get_pass(first).display_name}")
            print(f"   Last:  #{last} {inspector.get_pass(last).display_name}")
        else:
            print("\nNO PASS CHANGED THE IR")

        source_file = inspector.metadata.source.get('file')
        if source_file:
            print(f"\nSOURCE: {source_file}")
        print("=" * 60 + "\n")
