from __future__ import annotations

import json
import logging

import pytest

from conftest import AFTER_INSTCOMBINE, module_pass

from data_types import Pipeline, ScopeKind, InlineIR, IndexRef, DiffStats
from errors import SchemaVersionMismatch, PayloadCorrupt, SessionIOError
from snapshot_resolver import SnapshotResolver
import ir_stats
import session_codec


def _payload_dict(pipeline) -> dict:
    return json.loads(session_codec.encode(pipeline))


def _assert_same_snapshots(original, restored):
    left, right = SnapshotResolver(original), SnapshotResolver(restored)
    for index in range(original.passes_count() + 1):
        assert left.resolve(index) == right.resolve(index)


def test_round_trip_resolves_identically(pipeline):
    restored = session_codec.decode(session_codec.encode(pipeline)).pipeline

    assert restored.passes_count() == pipeline.passes_count()
    assert [p.changed for p in restored.passes] == [p.changed for p in pipeline.passes]
    assert [p.scope for p in restored.passes] == [p.scope for p in pipeline.passes]
    assert [p.name for p in restored.passes] == [p.name for p in pipeline.passes]
    _assert_same_snapshots(pipeline, restored)


def test_distinct_snapshots_stored_once(pipeline):
    data = _payload_dict(pipeline)

    assert data['version'] == session_codec.SCHEMA_VERSION
    assert data['metadata']['total_ir_entries'] == 3
    assert set(data['pipeline']['ir_table']) == {"0", "1", "2"}
    assert [p['ir_ref'] for p in data['pipeline']['passes']] == ["1", "1", "1", "1", "2", "2", "2"]
    assert data['pipeline']['changed_count'] == 2
    assert data['pipeline']['unchanged_count'] == 5


def test_decoded_references_point_at_first_occurrence(pipeline):
    restored = session_codec.decode(session_codec.encode(pipeline)).pipeline
    refs = [p.ir_ref for p in restored.passes]

    assert isinstance(refs[0], InlineIR)
    assert refs[1:4] == [IndexRef(1)] * 3
    assert isinstance(refs[4], InlineIR)
    assert refs[5:] == [IndexRef(5)] * 2


def test_empty_snapshots_round_trip():
    pipeline = Pipeline(initial_snapshot=(), passes=(module_pass("Foo", True, InlineIR(())),))
    restored = session_codec.decode(session_codec.encode(pipeline)).pipeline

    assert restored.initial_snapshot == ()
    assert SnapshotResolver(restored).resolve(1) == ()


def test_optional_fields_survive(pipeline):
    pipeline.passes[0].diff_stats = DiffStats(5, 4, 3)
    pipeline.passes[0].stats = ir_stats.count(AFTER_INSTCOMBINE)
    restored = session_codec.decode(session_codec.encode(pipeline)).pipeline

    assert restored.passes[0].diff_stats == DiffStats(5, 4, 3)
    assert restored.passes[0].stats == ir_stats.count(AFTER_INSTCOMBINE)
    assert restored.passes[1].diff_stats is None


def test_module_target_is_normalized():
    pipeline = Pipeline(initial_snapshot=("A",), passes=(module_pass("Foo", True, InlineIR(("B",))),))
    data = _payload_dict(pipeline)
    data['pipeline']['passes'][0]['scope_target'] = "[module]"

    record = session_codec.decode(json.dumps(data)).pipeline.passes[0]
    assert record.scope.kind == ScopeKind.MODULE
    assert record.scope.target is None


def test_newer_schema_version_is_rejected(pipeline):
    data = _payload_dict(pipeline)
    data['version'] = 2

    with pytest.raises(SchemaVersionMismatch) as excinfo:
        session_codec.decode(json.dumps(data))
    assert excinfo.value.found == 2
    assert excinfo.value.supported == 1


def test_invalid_json_reports_offset():
    with pytest.raises(PayloadCorrupt) as excinfo:
        session_codec.decode(b'{"version": 1, "pipeline": ')

    assert excinfo.value.offset is not None
    assert "(at byte" in str(excinfo.value)


def test_unknown_fields_are_ignored(pipeline):
    data = _payload_dict(pipeline)
    data['future_section'] = {'anything': True}
    data['pipeline']['passes'][0]['future_field'] = [1, 2, 3]

    restored = session_codec.decode(json.dumps(data)).pipeline
    assert restored.passes_count() == 7


@pytest.mark.parametrize("mutate", [
    lambda d: d['pipeline']['passes'][0].update(ir_ref="99"),
    lambda d: d['pipeline']['passes'][0].pop('changed'),
    lambda d: d['pipeline'].update(total_passes=3),
    lambda d: d['pipeline']['ir_table'].update({"1": "not base64!"}),
    lambda d: d.pop('pipeline'),
    lambda d: d.update(version="one"),
    lambda d: d["pipeline"]["ir_table"].pop("0"),
])
def test_structural_damage_is_corrupt(pipeline, mutate):
    data = _payload_dict(pipeline)
    mutate(data)

    with pytest.raises(PayloadCorrupt):
        session_codec.decode(json.dumps(data))


def test_malformed_diff_stats_are_dropped(pipeline):
    data = _payload_dict(pipeline)
    data['pipeline']['passes'][0]['diff_stats'] = {'lines_before': 1}

    restored = session_codec.decode(json.dumps(data)).pipeline
    assert restored.passes[0].diff_stats is None


def test_gzip_file_round_trip(tmp_path, pipeline):
    path = tmp_path / "sessions" / "run.json.gz"
    info = session_codec.save_to_file(path, pipeline, compilation={'opt_level': '-O2'})

    assert path.read_bytes()[:2] == b"\x1f\x8b"
    assert info['written_size'] == path.stat().st_size

    decoded = session_codec.load_from_file(path)
    assert decoded.metadata.compilation == {'opt_level': '-O2'}
    assert decoded.metadata.tool_version == session_codec.TOOL_VERSION
    _assert_same_snapshots(pipeline, decoded.pipeline)


def test_plain_json_file(tmp_path, pipeline):
    path = tmp_path / "run.json"
    session_codec.save_to_file(path, pipeline)

    assert json.loads(path.read_text())['pipeline']['total_passes'] == 7
    assert session_codec.load_from_file(path).pipeline.passes_count() == 7


def test_damaged_gzip_is_corrupt(tmp_path):
    path = tmp_path / "run.json.gz"
    path.write_bytes(b"definitely not gzip")

    with pytest.raises(PayloadCorrupt):
        session_codec.load_from_file(path)


def test_missing_file_is_io_error(tmp_path):
    with pytest.raises(SessionIOError):
        session_codec.load_from_file(tmp_path / "missing.json")


def test_source_drift_detection(tmp_path, pipeline, source_file):
    path = tmp_path / "run.json"
    session_codec.save_to_file(path, pipeline, source=session_codec.source_metadata(source_file))

    metadata = session_codec.load_from_file(path).metadata
    assert metadata.source['checksum'] == session_codec.compute_checksum(source_file.read_bytes())
    assert session_codec.validate_source(metadata) is None

    source_file.write_text("int f1(int x) { return x; }\n")
    warning = session_codec.validate_source(metadata)
    assert warning.startswith("Source file has changed since session was saved")

    source_file.unlink()
    assert session_codec.validate_source(metadata).startswith("Source file not found")


def test_compress_round_trip():
    assert session_codec.decompress(session_codec.compress("define void @f()")) == "define void @f()"


def test_missing_initial_entry_is_corrupt(pipeline):
    data = _payload_dict(pipeline)
    del data['pipeline']['ir_table']['0']

    with pytest.raises(PayloadCorrupt, match="missing initial snapshot entry"):
        session_codec.decode(json.dumps(data))


@pytest.mark.parametrize("stats", [
    {'future_metric': 1},
    {**dict.fromkeys(ir_stats.STAT_KEYS, 0), 'instructions': "3"},
    {**dict.fromkeys(ir_stats.STAT_KEYS, 0), 'calls': True},
    [1, 2, 3],
])
def test_malformed_stats_are_dropped(pipeline, stats, caplog):
    data = _payload_dict(pipeline)
    data['pipeline']['passes'][0]['stats'] = stats

    with caplog.at_level(logging.WARNING):
        restored = session_codec.decode(json.dumps(data)).pipeline

    assert restored.passes[0].stats is None
    assert "Ignoring malformed stats on pass 1" in caplog.text


def test_extra_stat_counters_are_discarded(pipeline):
    data = _payload_dict(pipeline)
    data['pipeline']['passes'][0]['stats'] = {**ir_stats.count(AFTER_INSTCOMBINE), 'future_metric': 9}

    restored = session_codec.decode(json.dumps(data)).pipeline
    assert restored.passes[0].stats == ir_stats.count(AFTER_INSTCOMBINE)


def test_forward_reference_stays_empty_after_reload(caplog):
    pipeline = Pipeline(
        initial_snapshot=("A",),
        passes=(
            module_pass("Foo", False, IndexRef(2)),
            module_pass("Bar", True, InlineIR(("B",))),
        ),
    )

    with caplog.at_level(logging.WARNING):
        data = _payload_dict(pipeline)
    assert "storing as empty snapshot" in caplog.text

    first_key = data['pipeline']['passes'][0]['ir_ref']
    assert first_key != "0"
    assert session_codec.decompress(data['pipeline']['ir_table'][first_key]) == "[]"

    restored = session_codec.decode(json.dumps(data)).pipeline
    assert SnapshotResolver(pipeline).resolve(1) == ()
    assert SnapshotResolver(restored).resolve(1) == ()
    assert SnapshotResolver(restored).resolve(2) == ("B",)
