#!/usr/bin/env python3
"""
Session codec - Versioned, deduplicated on-disk form of a parsed pipeline

Every distinct snapshot is stored once in an IR table (zlib + base64),
and passes refer to table keys. A file therefore grows with the number of
distinct snapshots, not with the number of passes.
"""

import base64
import binascii
import gzip
import hashlib
import json
import logging
import os
import time
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from data_types import (
    Pipeline, PassRecord, Scope, ScopeKind, InlineIR, IndexRef, DiffStats, Lines,
)
from errors import SchemaVersionMismatch, PayloadCorrupt, SessionIOError
import ir_stats

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
TOOL_VERSION = "1.0.0"
INITIAL_KEY = "0"


@dataclass
class SessionMetadata:
    """Everything a session carries besides the pipeline itself"""
    source: Dict[str, Any] = field(default_factory=dict)       # {file, checksum, mtime}
    compilation: Dict[str, Any] = field(default_factory=dict)  # {opt_level, command, ...}
    timestamp: Optional[float] = None
    tool_version: Optional[str] = None
    version: int = SCHEMA_VERSION
    statistics: Dict[str, Any] = field(default_factory=dict)


@dataclass
class DecodedSession:
    pipeline: Pipeline
    metadata: SessionMetadata


def compress(text: str) -> str:
    return base64.b64encode(zlib.compress(text.encode('utf-8'))).decode('ascii')


def decompress(blob: str) -> str:
    return zlib.decompress(base64.b64decode(blob, validate=True)).decode('utf-8')


def compute_checksum(content: Union[str, bytes]) -> str:
    if isinstance(content, str):
        content = content.encode('utf-8')
    return hashlib.sha256(content).hexdigest()


def source_metadata(source_file: Union[str, Path]) -> Dict[str, Any]:
    """Path, checksum and mtime of the file a pipeline was produced from"""
    path = Path(source_file).resolve()
    metadata: Dict[str, Any] = {'file': str(path)}
    try:
        metadata['checksum'] = compute_checksum(path.read_bytes())
        metadata['mtime'] = path.stat().st_mtime
    except OSError as e:
        logger.warning(f"Could not checksum source file {path}: {e}")
    return metadata


def _build_ir_table(pipeline: Pipeline) -> Tuple[Dict[str, Lines], List[str]]:
    """
    Deduplicate snapshots.
    Returns (key -> lines, per-pass key list)
    """
    ir_table: Dict[str, Lines] = {INITIAL_KEY: pipeline.initial_snapshot}
    content_to_key: Dict[Lines, str] = {pipeline.initial_snapshot: INITIAL_KEY}
    pass_keys: List[str] = []

    def intern(lines: Lines) -> str:
        key = content_to_key.get(lines)
        if key is None:
            key = str(len(ir_table))
            ir_table[key] = lines
            content_to_key[lines] = key
        return key

    for i, record in enumerate(pipeline.passes, start=1):
        ir_ref = record.ir_ref
        if isinstance(ir_ref, InlineIR):
            key = intern(ir_ref.lines)
        elif ir_ref.index == 0:
            key = INITIAL_KEY
        elif 1 <= ir_ref.index < i:
            key = pass_keys[ir_ref.index - 1]
        else:
            # Forward or out-of-range: resolves to an empty snapshot before and after a reload
            logger.warning(f"Pass {i} references invalid index {ir_ref.index}; storing as empty snapshot")
            key = intern(())
        pass_keys.append(key)

    return ir_table, pass_keys


def _serialize_pass(record: PassRecord, ir_key: str) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        'name': record.name,
        'scope_type': record.scope.kind.value,
        'scope_target': record.scope.target,
        'changed': record.changed,
        'ir_ref': ir_key,
    }
    if record.stats is not None:
        entry['stats'] = record.stats
    if record.diff_stats is not None:
        entry['diff_stats'] = record.diff_stats.to_dict()
    if record.remarks is not None:
        entry['remarks'] = record.remarks
    return entry


def encode(pipeline: Pipeline,
           source: Optional[Dict[str, Any]] = None,
           compilation: Optional[Dict[str, Any]] = None) -> bytes:
    """Serialize a pipeline to the versioned JSON container"""
    ir_table, pass_keys = _build_ir_table(pipeline)

    changed_count = pipeline.changed_count()
    data = {
        'version': SCHEMA_VERSION,
        'tool_version': TOOL_VERSION,
        'timestamp': time.time(),
        'source': source or {},
        'compilation': compilation or {},
        'pipeline': {
            'ir_table': {key: compress(json.dumps(list(lines))) for key, lines in ir_table.items()},
            'passes': [_serialize_pass(r, k) for r, k in zip(pipeline.passes, pass_keys)],
            'total_passes': pipeline.passes_count(),
            'changed_count': changed_count,
            'unchanged_count': pipeline.passes_count() - changed_count,
        },
        'metadata': {
            'total_ir_entries': len(ir_table),
        },
    }

    logger.debug(f"Encoded {pipeline.passes_count()} passes with {len(ir_table)} distinct snapshots")
    return json.dumps(data, ensure_ascii=False).encode('utf-8')


def _require(condition: bool, detail: str):
    if not condition:
        raise PayloadCorrupt(detail)


def _decode_ir_table(raw_table: Dict[str, Any]) -> Dict[str, Lines]:
    ir_table: Dict[str, Lines] = {}
    for key, blob in raw_table.items():
        _require(isinstance(blob, str), f"IR entry {key!r} is not a string")
        try:
            lines = json.loads(decompress(blob))
        except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as e:
            raise PayloadCorrupt(f"failed to decompress IR entry {key!r}: {e}") from e
        _require(isinstance(lines, list) and all(isinstance(l, str) for l in lines),
                 f"IR entry {key!r} is not a list of lines")
        ir_table[key] = tuple(lines)
    return ir_table


def _decode_scope(entry: Dict[str, Any], position: int) -> Scope:
    try:
        kind = ScopeKind(entry.get('scope_type') or ScopeKind.UNKNOWN.value)
    except ValueError:
        raise PayloadCorrupt(f"pass {position} has unknown scope type {entry.get('scope_type')!r}")

    target = entry.get('scope_target')
    _require(target is None or isinstance(target, str), f"pass {position} has a non-string scope target")
    if kind == ScopeKind.MODULE:
        # Older writers stored the literal "[module]" target
        target = None
    return Scope(kind, target)


def _valid_stats(stats: Any) -> bool:
    """Every counter present as a plain int"""
    return isinstance(stats, dict) and all(
        isinstance(stats.get(key), int) and not isinstance(stats.get(key), bool)
        for key in ir_stats.STAT_KEYS
    )


def _decode_optional(record: PassRecord, entry: Dict[str, Any], position: int):
    """Derived fields are informational: malformed ones are dropped, not fatal"""
    stats = entry.get('stats')
    if stats is not None:
        if _valid_stats(stats):
            record.stats = {key: stats[key] for key in ir_stats.STAT_KEYS}
        else:
            logger.warning(f"Ignoring malformed stats on pass {position}")

    diff_stats = entry.get('diff_stats')
    if isinstance(diff_stats, dict):
        try:
            record.diff_stats = DiffStats.from_dict(diff_stats)
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Ignoring malformed diff_stats on pass {position}")

    remarks = entry.get('remarks')
    if isinstance(remarks, list):
        record.remarks = remarks


def decode(payload: Union[bytes, str]) -> DecodedSession:
    """
    Rebuild a pipeline from encode() output.

    The first pass referencing a table key gets the snapshot inline; later
    passes referencing the same key point back at that first pass.
    Raises SchemaVersionMismatch or PayloadCorrupt; never returns a
    partially built pipeline.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise PayloadCorrupt(f"invalid JSON: {e.msg}", offset=e.pos) from e
    except UnicodeDecodeError as e:
        raise PayloadCorrupt(f"payload is not UTF-8: {e.reason}", offset=e.start) from e

    _require(isinstance(data, dict), "top-level value is not an object")

    version = data.get('version')
    _require(isinstance(version, int) and not isinstance(version, bool) and version >= 1,
             f"missing or invalid schema version {version!r}")
    if version > SCHEMA_VERSION:
        raise SchemaVersionMismatch(found=version, supported=SCHEMA_VERSION)

    section = data.get('pipeline')
    _require(isinstance(section, dict), "missing pipeline section")
    raw_table = section.get('ir_table')
    raw_passes = section.get('passes')
    _require(isinstance(raw_table, dict), "missing IR table")
    _require(isinstance(raw_passes, list), "missing pass list")

    ir_table = _decode_ir_table(raw_table)
    _require(INITIAL_KEY in ir_table, "missing initial snapshot entry")
    initial_snapshot = ir_table[INITIAL_KEY]

    first_seen: Dict[str, int] = {INITIAL_KEY: 0}
    passes: List[PassRecord] = []

    for position, entry in enumerate(raw_passes, start=1):
        _require(isinstance(entry, dict), f"pass {position} is not an object")
        name = entry.get('name')
        changed = entry.get('changed')
        ir_key = entry.get('ir_ref')
        _require(isinstance(name, str), f"pass {position} has no name")
        _require(isinstance(changed, bool), f"pass {position} has no changed flag")
        _require(isinstance(ir_key, str), f"pass {position} has no IR reference")
        _require(ir_key in ir_table,
                 f"pass {position} references unknown IR entry {ir_key!r}")

        if ir_key in first_seen:
            ir_ref = IndexRef(first_seen[ir_key])
        else:
            ir_ref = InlineIR(ir_table[ir_key])
            first_seen[ir_key] = position

        record = PassRecord(
            name=name,
            scope=_decode_scope(entry, position),
            changed=changed,
            ir_ref=ir_ref,
        )
        _decode_optional(record, entry, position)
        passes.append(record)

    declared_total = section.get('total_passes')
    if isinstance(declared_total, int) and declared_total != len(passes):
        raise PayloadCorrupt(f"pass count mismatch: header says {declared_total}, found {len(passes)}")

    def as_dict(value) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    metadata = SessionMetadata(
        source=as_dict(data.get('source')),
        compilation=as_dict(data.get('compilation')),
        timestamp=data.get('timestamp'),
        tool_version=data.get('tool_version'),
        version=version,
        statistics={
            **as_dict(data.get('metadata')),
            'changed_count': section.get('changed_count'),
            'unchanged_count': section.get('unchanged_count'),
        },
    )

    pipeline = Pipeline(initial_snapshot=initial_snapshot, passes=tuple(passes))
    return DecodedSession(pipeline=pipeline, metadata=metadata)


def save_to_file(file_path: Union[str, Path], pipeline: Pipeline,
                 source: Optional[Dict[str, Any]] = None,
                 compilation: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Write a session file; gzip-compressed when the name ends in .gz.
    Returns size and timing information.
    """
    file_path = Path(file_path)
    start_time = time.monotonic()

    payload = encode(pipeline, source, compilation)

    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        if file_path.suffix == '.gz':
            with gzip.open(file_path, 'wb') as f:
                f.write(payload)
        else:
            with open(file_path, 'wb') as f:
                f.write(payload)
        written_size = file_path.stat().st_size
    except OSError as e:
        raise SessionIOError(str(file_path), str(e)) from e

    elapsed_ms = (time.monotonic() - start_time) * 1000
    logger.info(
        f"Saved pipeline session: {file_path.name} "
        f"({len(payload) / 1024 / 1024:.1f} MB -> {written_size / 1024 / 1024:.1f} MB in {elapsed_ms:.0f} ms)"
    )
    return {
        'path': str(file_path),
        'uncompressed_size': len(payload),
        'written_size': written_size,
        'elapsed_ms': elapsed_ms,
    }


def load_from_file(file_path: Union[str, Path]) -> DecodedSession:
    """Read and decode a session file written by save_to_file()"""
    file_path = Path(file_path)
    start_time = time.monotonic()

    try:
        if file_path.suffix == '.gz':
            with gzip.open(file_path, 'rb') as f:
                payload = f.read()
        else:
            with open(file_path, 'rb') as f:
                payload = f.read()
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        raise PayloadCorrupt(f"failed to decompress {file_path.name}: {e}") from e
    except OSError as e:
        raise SessionIOError(str(file_path), str(e)) from e

    session = decode(payload)

    elapsed_ms = (time.monotonic() - start_time) * 1000
    logger.info(
        f"Loaded pipeline session: {file_path.name} "
        f"({session.pipeline.passes_count()} passes, {session.pipeline.changed_count()} changed, {elapsed_ms:.0f} ms)"
    )
    return session


def validate_source(metadata: SessionMetadata) -> Optional[str]:
    """
    Compare the recorded source checksum against the file on disk.
    Returns a warning message on drift, None when nothing looks stale.
    Drift is advisory: the loaded pipeline stays internally consistent.
    """
    source_file = metadata.source.get('file')
    if not source_file:
        return None

    if not os.path.isfile(source_file):
        return f"Source file not found: {source_file}"

    saved_checksum = metadata.source.get('checksum')
    if not saved_checksum:
        return None

    try:
        current_checksum = compute_checksum(Path(source_file).read_bytes())
    except OSError as e:
        return f"Failed to read source file {source_file}: {e}"

    if current_checksum != saved_checksum:
        saved_at = (datetime.fromtimestamp(metadata.timestamp).isoformat()
                    if isinstance(metadata.timestamp, (int, float)) else "unknown time")
        return (
            f"Source file has changed since session was saved ({saved_at})\n"
            f"File: {source_file}\n"
            f"Saved checksum: {saved_checksum}\n"
            f"Current checksum: {current_checksum}"
        )
    return None
