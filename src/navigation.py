#!/usr/bin/env python3
"""
Change navigation over a pipeline: jump between passes that changed the IR.
None is returned at either end; navigation never wraps around.
"""

from typing import Optional

from data_types import Pipeline


def next_changed_from(pipeline: Pipeline, index: int) -> Optional[int]:
    """First changed pass strictly after index"""
    for i in range(max(index + 1, 1), pipeline.passes_count() + 1):
        if pipeline.passes[i - 1].changed:
            return i
    return None


def prev_changed_from(pipeline: Pipeline, index: int) -> Optional[int]:
    """Last changed pass strictly before index"""
    for i in range(min(index - 1, pipeline.passes_count()), 0, -1):
        if pipeline.passes[i - 1].changed:
            return i
    return None


def first_changed(pipeline: Pipeline) -> Optional[int]:
    return next_changed_from(pipeline, 0)


def last_changed(pipeline: Pipeline) -> Optional[int]:
    return prev_changed_from(pipeline, pipeline.passes_count() + 1)


def clamp_index(pipeline: Pipeline, index: int) -> int:
    """Clamp a requested pass index into 1..passes_count (0 for an empty pipeline)"""
    if pipeline.passes_count() == 0:
        return 0
    return max(1, min(index, pipeline.passes_count()))
