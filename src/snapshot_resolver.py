#!/usr/bin/env python3
"""
SnapshotResolver - Resolves pass indices to full-module IR snapshots
Follows back-reference chains and memoizes every index it visits.
"""

import logging
import threading
from typing import List, Optional

from data_types import Pipeline, InlineIR, IndexRef, Lines


EMPTY: Lines = ()


class SnapshotResolver:
    """
    Memoized resolution of a Pipeline's lazy IR references.

    The cache is a dense list indexed by pass index (slot 0 holds the
    initial snapshot). It only grows while a pipeline is loaded and is
    dropped wholesale by reset().
    """

    def __init__(self, pipeline: Pipeline):
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self.reset(pipeline)

    def reset(self, pipeline: Pipeline):
        """Switch to a new pipeline, discarding every cached snapshot"""
        with self._lock:
            self.pipeline = pipeline
            self._cache: List[Optional[Lines]] = [None] * (pipeline.passes_count() + 1)
            self._cache[0] = pipeline.initial_snapshot

    def clear(self):
        """Drop cached snapshots for the current pipeline"""
        self.reset(self.pipeline)

    def cached_count(self) -> int:
        return sum(1 for entry in self._cache if entry is not None)

    def resolve(self, index: int) -> Lines:
        """
        Full-module IR at a pass index (0 = initial snapshot).
        Out-of-range indices resolve to an empty snapshot.

        The pipeline and cache are bound once on entry, so a reset() that
        lands mid-walk never receives snapshots of the pipeline it replaced.
        """
        with self._lock:
            pipeline, cache = self.pipeline, self._cache

        if index < 0 or index >= len(cache):
            self.logger.warning(f"Resolution gap: pass index {index} outside 0..{len(cache) - 1}")
            return EMPTY

        cached = cache[index]
        if cached is not None:
            return cached

        # Walk the chain down to a cached or inline snapshot
        chain = []
        current = index
        resolved: Optional[Lines] = None
        while resolved is None:
            cached = cache[current]
            if cached is not None:
                resolved = cached
                break

            chain.append(current)
            ir_ref = pipeline.passes[current - 1].ir_ref

            if isinstance(ir_ref, InlineIR):
                resolved = ir_ref.lines
            elif isinstance(ir_ref, IndexRef):
                target = ir_ref.index
                if target < 0 or target >= current:
                    # Would loop or leave the pipeline; references must point backwards
                    self.logger.warning(
                        f"Resolution gap: pass {current} references index {target}"
                    )
                    resolved = EMPTY
                else:
                    current = target
            else:
                raise TypeError(f"Unexpected IR reference at pass index {current}: {ir_ref!r}")

        with self._lock:
            for visited in chain:
                cache[visited] = resolved

        return resolved

    def get_after(self, index: int) -> Lines:
        return self.resolve(index)

    def get_before(self, index: int) -> Lines:
        """
        Module IR before a pass ran. An unchanged pass has before == after,
        so only changed passes need the previous snapshot.
        """
        if index <= 1:
            return self.pipeline.initial_snapshot

        record = self.pipeline.get_pass(index)
        if record is None:
            self.logger.warning(f"Resolution gap: no pass at index {index}")
            return EMPTY

        if not record.changed:
            return self.get_after(index)

        return self.resolve(index - 1)


def resolve(pipeline: Pipeline, index: int) -> Lines:
    """One-shot resolution without keeping a cache around"""
    return SnapshotResolver(pipeline).resolve(index)
