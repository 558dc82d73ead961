#!/usr/bin/env python3
"""
Chunked batch computation over pass records

Per-pass work over thousands of passes is split into bounded chunks so
the host can keep its event loop responsive. A record's derived field
stays None ("not yet computed") until its own value is assigned;
stopping between chunks and resuming later never recomputes records.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from data_types import Pipeline, PassRecord
from diff_engine import DiffEngine
from snapshot_resolver import SnapshotResolver
import ir_stats


@dataclass
class BatchProgress:
    """Progress snapshot reported after every chunk"""
    done: int
    total: int
    elapsed: float

    @property
    def complete(self) -> bool:
        return self.done >= self.total


class ChunkedBatch:
    """
    Applies `compute(index, record)` to every pass and stores the result
    with `store(record, value)`, `chunk_size` passes at a time.
    """

    def __init__(self, pipeline: Pipeline,
                 compute: Callable[[int, PassRecord], Any],
                 store: Callable[[PassRecord, Any], None],
                 chunk_size: int = 50,
                 label: str = "batch"):
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        self.pipeline = pipeline
        self.compute = compute
        self.store = store
        self.chunk_size = chunk_size
        self.label = label
        self.logger = logging.getLogger(__name__)

        self._next_index = 1
        self._cancelled = False
        self._started_at: Optional[float] = None

    @property
    def total(self) -> int:
        return self.pipeline.passes_count()

    @property
    def done(self) -> int:
        return self._next_index - 1

    @property
    def is_complete(self) -> bool:
        return self._next_index > self.total

    def progress(self) -> BatchProgress:
        elapsed = time.monotonic() - self._started_at if self._started_at else 0.0
        return BatchProgress(done=self.done, total=self.total, elapsed=elapsed)

    def cancel(self):
        """Stop scheduling further chunks; takes effect at the next boundary"""
        self._cancelled = True

    def run_chunk(self) -> bool:
        """Process the next chunk. Returns True while work remains."""
        if self._started_at is None:
            self._started_at = time.monotonic()

        end = min(self._next_index + self.chunk_size - 1, self.total)
        for index in range(self._next_index, end + 1):
            record = self.pipeline.passes[index - 1]
            self.store(record, self.compute(index, record))
            self._next_index = index + 1

        if self.is_complete:
            self.logger.info(f"{self.label}: processed {self.total} passes in {self.progress().elapsed:.3f}s")
        return not self.is_complete

    def iter_chunks(self) -> Iterator[BatchProgress]:
        """
        Generator form: one chunk per iteration. Resumable after cancel()
        by calling it again.
        """
        self._cancelled = False
        while not self.is_complete and not self._cancelled:
            self.run_chunk()
            yield self.progress()

    def run(self) -> BatchProgress:
        """Run all remaining chunks without yielding"""
        for _ in self.iter_chunks():
            pass
        return self.progress()

    async def run_async(self, on_progress: Optional[Callable[[BatchProgress], None]] = None) -> BatchProgress:
        """Run remaining chunks, yielding to the event loop between them"""
        for progress in self.iter_chunks():
            if on_progress is not None:
                on_progress(progress)
            await asyncio.sleep(0)
        return self.progress()


def _store_diff_stats(record: PassRecord, value):
    record.diff_stats = value


def _store_stats(record: PassRecord, value):
    record.stats = value


def change_batch(engine: DiffEngine, chunk_size: Optional[int] = None) -> ChunkedBatch:
    """Batch that fills PassRecord.diff_stats for every pass"""
    return ChunkedBatch(
        engine.pipeline,
        compute=lambda index, record: engine.compute_diff_stats(index),
        store=_store_diff_stats,
        chunk_size=chunk_size or engine.config.chunk_size,
        label="change detection",
    )


def stats_batch(resolver: SnapshotResolver, chunk_size: int = 100) -> ChunkedBatch:
    """Batch that fills PassRecord.stats with IR statistics of the after-snapshot"""
    return ChunkedBatch(
        resolver.pipeline,
        compute=lambda index, record: ir_stats.count(resolver.get_after(index)),
        store=_store_stats,
        chunk_size=chunk_size,
        label="statistics",
    )


def compute_all_changes(pipeline: Pipeline, engine: Optional[DiffEngine] = None) -> Pipeline:
    """Blocking form: diff statistics for every pass up front"""
    if engine is None:
        engine = DiffEngine(pipeline, SnapshotResolver(pipeline))
    change_batch(engine).run()
    return pipeline
