#!/usr/bin/env python3
"""
PipelineInspector - Facade over parsing, resolution, grouping and diffing
Holds exactly one loaded pipeline and the views derived from it.
"""

import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from data_types import Pipeline, PassRecord, Group, DiffView, InspectorConfig
from errors import SourceDrift
from trace_parser import TraceParser
from snapshot_resolver import SnapshotResolver
from diff_engine import DiffEngine
from pass_grouping import group_passes
from batch import ChunkedBatch, change_batch, stats_batch
import ir_stats
import navigation
import session_codec
from session_codec import SessionMetadata


def setup_logging(log_file: Optional[Path] = None, verbose: bool = False):
    """Configure dual logging (file + terminal)"""
    handlers: List[logging.Handler] = []
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode='w'))
    handlers.append(logging.StreamHandler() if verbose else logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


class PipelineInspector:
    """
    Main entry point for a host (CLI, editor, ...).

    Workflow:
    1. Load a pipeline from a trace or a saved session
    2. Navigate passes and request before/after views
    3. Optionally precompute change statistics in chunks
    4. Save the session for later
    """

    def __init__(self, config: Optional[InspectorConfig] = None):
        self.config = config or InspectorConfig()
        self.logger = logging.getLogger(__name__)
        self.parser = TraceParser()

        # Analysis state, replaced wholesale on every load
        self.pipeline = Pipeline()
        self.metadata = SessionMetadata()
        self.resolver = SnapshotResolver(self.pipeline)
        self.engine = DiffEngine(self.pipeline, self.resolver, self.config)
        self._groups: Optional[List[Group]] = None

    def _install(self, pipeline: Pipeline, metadata: Optional[SessionMetadata] = None):
        """Swap in a new pipeline together with fresh derived views"""
        resolver = SnapshotResolver(pipeline)
        engine = DiffEngine(pipeline, resolver, self.config)

        self.pipeline = pipeline
        self.metadata = metadata or SessionMetadata()
        self.resolver = resolver
        self.engine = engine
        self._groups = None

        self.logger.info(f"Loaded pipeline: {pipeline.passes_count()} passes, {pipeline.changed_count()} changed")

    def load_trace(self, trace_text: str) -> Pipeline:
        self._install(self.parser.parse(trace_text))
        return self.pipeline

    def load_trace_file(self, trace_file: Union[str, Path]) -> Pipeline:
        self._install(self.parser.parse_file(trace_file))
        return self.pipeline

    def load_session(self, session_file: Union[str, Path]) -> Optional[str]:
        """
        Replace the current pipeline with a saved session.
        On failure the exception propagates and the current pipeline stays.
        Returns the source drift warning, if any.
        """
        decoded = session_codec.load_from_file(session_file)
        self._install(decoded.pipeline, decoded.metadata)

        warning = session_codec.validate_source(decoded.metadata)
        if warning:
            self.logger.warning(warning)
            warnings.warn(warning, SourceDrift, stacklevel=2)
        return warning

    def save_session(self, session_file: Union[str, Path],
                     source_file: Optional[Union[str, Path]] = None,
                     compilation: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        source = session_codec.source_metadata(source_file) if source_file else self.metadata.source
        return session_codec.save_to_file(
            session_file, self.pipeline, source, compilation or self.metadata.compilation
        )

    # Read-only accessors

    def passes_count(self) -> int:
        return self.pipeline.passes_count()

    def get_pass(self, index: int) -> Optional[PassRecord]:
        return self.pipeline.get_pass(index)

    def groups(self) -> List[Group]:
        if self._groups is None:
            self._groups = group_passes(self.pipeline)
        return self._groups

    def show(self, index: int) -> DiffView:
        return self.engine.diff(index)

    def next_changed_from(self, index: int) -> Optional[int]:
        return navigation.next_changed_from(self.pipeline, index)

    def prev_changed_from(self, index: int) -> Optional[int]:
        return navigation.prev_changed_from(self.pipeline, index)

    def first_changed(self) -> Optional[int]:
        return navigation.first_changed(self.pipeline)

    def last_changed(self) -> Optional[int]:
        return navigation.last_changed(self.pipeline)

    # Batch computation

    def change_batch(self) -> ChunkedBatch:
        return change_batch(self.engine, self.config.chunk_size)

    def stats_batch(self) -> ChunkedBatch:
        return stats_batch(self.resolver, self.config.stats_chunk_size)

    def compute_changes(self):
        """Blocking: diff statistics for every pass"""
        self.change_batch().run()

    def compute_stats(self):
        """Blocking: IR statistics for every pass"""
        self.stats_batch().run()

    def stats_line(self, index: int) -> str:
        """One-line IR statistics for a pass, with the change from the previous one"""
        record = self.pipeline.get_pass(index)
        if record is None:
            return ""

        current = record.stats if record.stats is not None else ir_stats.count(self.resolver.get_after(index))
        header = f"[Pass {index}/{self.passes_count()}] {record.display_name}"
        if index == 1:
            previous = ir_stats.count(self.pipeline.initial_snapshot)
        else:
            prev_record = self.pipeline.passes[index - 2]
            previous = prev_record.stats if prev_record.stats is not None else \
                ir_stats.count(self.resolver.get_after(index - 1))

        return f"{header} | {ir_stats.format_with_delta(current, ir_stats.delta(previous, current))}"
