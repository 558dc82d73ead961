from __future__ import annotations

from conftest import function_pass, module_pass

from data_types import Pipeline, PassRecord, Scope, StandaloneGroup, CollapsedGroup, ScopeKind, InlineIR, IndexRef
from pass_grouping import (
    group_passes, group_for_pass, toggle_fold, set_all_folded, visible_rows, member_indices,
)


def _indices(group):
    return [m.original_index for m in group.members]


def test_repeated_target_opens_new_group():
    pipeline = Pipeline(passes=(
        function_pass("Bar", "f1"),
        function_pass("Bar", "f2"),
        function_pass("Bar", "f1"),
    ))

    groups = group_passes(pipeline)

    assert len(groups) == 2
    assert all(isinstance(g, CollapsedGroup) and g.pass_name == "Bar" for g in groups)
    assert groups[0].targets() == ["f1", "f2"]
    assert _indices(groups[0]) == [1, 2]
    assert _indices(groups[1]) == [3]


def test_sample_pipeline_groups(pipeline):
    groups = group_passes(pipeline)

    assert len(groups) == 5
    assert [g.display_index for g in groups] == [1, 2, 3, 4, 5]

    instcombine, globalopt, simplifycfg, inliner, licm = groups
    assert isinstance(instcombine, CollapsedGroup)
    assert instcombine.targets() == ["f1", "f2"]
    assert isinstance(globalopt, StandaloneGroup)
    assert globalopt.original_index == 3
    assert simplifycfg.pass_name == "SimplifyCFGPass"
    assert inliner.scope_kind == ScopeKind.CGSCC
    assert licm.scope_kind == ScopeKind.LOOP


def test_changed_members_sort_first(pipeline):
    simplifycfg = group_passes(pipeline)[2]

    assert simplifycfg.has_changes is True
    assert simplifycfg.folded is True
    assert _indices(simplifycfg) == [5, 4]


def test_group_without_changes(pipeline):
    inliner = group_passes(pipeline)[3]
    assert inliner.has_changes is False


def test_module_pass_closes_open_groups():
    pipeline = Pipeline(passes=(
        function_pass("Bar", "f1"),
        module_pass("Mod", False, InlineIR(())),
        function_pass("Bar", "f2"),
    ))

    groups = group_passes(pipeline)

    assert [type(g) for g in groups] == [CollapsedGroup, StandaloneGroup, CollapsedGroup]
    assert _indices(groups[0]) == [1]
    assert _indices(groups[2]) == [3]


def test_interleaved_pass_names_share_open_groups():
    pipeline = Pipeline(passes=(
        function_pass("Foo", "f1"),
        function_pass("Bar", "f1"),
        function_pass("Foo", "f2"),
        function_pass("Bar", "f2"),
    ))

    groups = group_passes(pipeline)

    assert [g.pass_name for g in groups] == ["Foo", "Bar"]
    assert _indices(groups[0]) == [1, 3]
    assert _indices(groups[1]) == [2, 4]


def test_grouping_is_deterministic(pipeline):
    assert group_passes(pipeline) == group_passes(pipeline)


def test_every_scoped_pass_in_exactly_one_group(pipeline):
    groups = group_passes(pipeline)

    covered = [i for g in groups for i in member_indices(g)]
    assert sorted(covered) == list(range(1, pipeline.passes_count() + 1))
    for index in range(1, pipeline.passes_count() + 1):
        assert group_for_pass(groups, index) is not None
    assert group_for_pass(groups, 99) is None


def test_fold_state_controls_visible_rows(pipeline):
    groups = group_passes(pipeline)
    assert len(visible_rows(groups)) == 5

    assert toggle_fold(groups[0]) is False
    rows = visible_rows(groups)
    assert len(rows) == 7
    assert rows[1] == (groups[0], groups[0].members[0])

    assert toggle_fold(groups[1]) is False

    set_all_folded(groups, False)
    assert len(visible_rows(groups)) == 5 + 2 + 2 + 1 + 1
    set_all_folded(groups, True)
    assert len(visible_rows(groups)) == 5


def test_empty_pipeline_has_no_groups():
    assert group_passes(Pipeline()) == []


def _unscoped_pass(name):
    return PassRecord(name=name, scope=Scope.unknown(), changed=False, ir_ref=IndexRef(0))


def test_unscoped_passes_do_not_close_open_groups():
    pipeline = Pipeline(passes=(
        function_pass("Bar", "f1"),
        _unscoped_pass("PostInlineEntryExitInstrumenterPass"),
        function_pass("Bar", "f2"),
        _unscoped_pass("PostInlineEntryExitInstrumenterPass"),
    ))

    groups = group_passes(pipeline)

    assert not any(isinstance(g, StandaloneGroup) for g in groups)
    assert [(g.pass_name, g.scope_kind) for g in groups] == [
        ("Bar", ScopeKind.FUNCTION),
        ("PostInlineEntryExitInstrumenterPass", ScopeKind.UNKNOWN),
        ("PostInlineEntryExitInstrumenterPass", ScopeKind.UNKNOWN),
    ]
    assert _indices(groups[0]) == [1, 3]
    assert _indices(groups[1]) == [2]
    assert _indices(groups[2]) == [4]


def test_module_pass_still_closes_unscoped_groups():
    pipeline = Pipeline(passes=(
        _unscoped_pass("Legacy"),
        module_pass("Mod", False, InlineIR(())),
        function_pass("Bar", "f1"),
    ))

    groups = group_passes(pipeline)

    assert [type(g) for g in groups] == [CollapsedGroup, StandaloneGroup, CollapsedGroup]
    assert groups[0].scope_kind == ScopeKind.UNKNOWN
