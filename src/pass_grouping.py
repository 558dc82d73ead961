#!/usr/bin/env python3
"""
Pass grouping - Collapses per-function pass runs into foldable groups

The optimizer re-runs function-scoped passes once per function, so a flat
pass list is dominated by near-duplicate entries. Consecutive invocations
of the same pass over distinct functions are folded into one group; a
module pass, or a repeated target, starts a new invocation.
"""

import logging
from typing import List, Optional, Tuple, Union

from data_types import (
    Pipeline, Group, StandaloneGroup, CollapsedGroup, GroupMember, ScopeKind,
)

logger = logging.getLogger(__name__)


def group_passes(pipeline: Pipeline) -> List[Group]:
    """
    Partition the pass sequence into display groups.
    Pure: the same pipeline always yields the same groups.
    """
    groups: List[Group] = []
    open_groups: List[CollapsedGroup] = []

    for index, record in enumerate(pipeline.passes, start=1):
        if record.scope.kind == ScopeKind.MODULE:
            # Module pass: close every open group first
            groups.extend(open_groups)
            open_groups = []
            groups.append(StandaloneGroup(original_index=index))
            continue

        member = GroupMember(target=record.scope.target, original_index=index)
        for open_group in open_groups:
            if (open_group.pass_name == record.name
                    and open_group.scope_kind == record.scope.kind
                    and member.target not in open_group.targets()):
                open_group.members.append(member)
                break
        else:
            # New pass name, or same target again = a second invocation
            open_groups.append(CollapsedGroup(
                pass_name=record.name,
                scope_kind=record.scope.kind,
                members=[member],
            ))

    groups.extend(open_groups)

    for display_index, group in enumerate(groups, start=1):
        group.display_index = display_index
        if isinstance(group, CollapsedGroup):
            _finalize_collapsed(group, pipeline)

    logger.debug(f"Grouped {pipeline.passes_count()} passes into {len(groups)} groups")
    return groups


def _finalize_collapsed(group: CollapsedGroup, pipeline: Pipeline):
    def changed(member: GroupMember) -> bool:
        return pipeline.passes[member.original_index - 1].changed

    group.has_changes = any(changed(m) for m in group.members)
    group.folded = True
    # Changed functions first, then pipeline order
    group.members.sort(key=lambda m: (not changed(m), m.original_index))


def group_for_pass(groups: List[Group], index: int) -> Optional[Group]:
    """The group that contains a given pass index"""
    for group in groups:
        if isinstance(group, StandaloneGroup):
            if group.original_index == index:
                return group
        elif any(m.original_index == index for m in group.members):
            return group
    return None


def toggle_fold(group: Group) -> bool:
    """Flip a collapsed group's fold state; returns the new state"""
    if not isinstance(group, CollapsedGroup):
        return False
    group.folded = not group.folded
    return group.folded


def set_all_folded(groups: List[Group], folded: bool):
    for group in groups:
        if isinstance(group, CollapsedGroup):
            group.folded = folded


Row = Tuple[Group, Union[GroupMember, None]]


def visible_rows(groups: List[Group]) -> List[Row]:
    """
    Flatten groups into display rows honoring fold state.
    Each row is (group, None) for a header/standalone line, or
    (group, member) for an unfolded function entry.
    """
    rows: List[Row] = []
    for group in groups:
        rows.append((group, None))
        if isinstance(group, CollapsedGroup) and not group.folded:
            rows.extend((group, member) for member in group.members)
    return rows


def member_indices(group: Group) -> List[int]:
    """Original pass indices covered by a group, in pipeline order"""
    if isinstance(group, StandaloneGroup):
        return [group.original_index]
    return sorted(m.original_index for m in group.members)
