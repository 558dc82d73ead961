#!/usr/bin/env python3
"""
SessionStore - Per-source directory of saved pipeline sessions
Keeps a JSON index of sessions with retention and age-based cleanup.
"""

import json
import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from data_types import InspectorConfig, Pipeline
from errors import SessionNotFound, SessionIOError
import session_codec
from session_codec import DecodedSession

INDEX_VERSION = 1
LATEST_POINTER = "latest"


class SessionStore:
    """
    Layout under the store root:

        <root>/metadata.json                     index of all sessions
        <root>/sessions/<source stem>/<name>     session files
        <root>/sessions/<source stem>/latest     name of the newest file
    """

    def __init__(self, root: Union[str, Path], config: Optional[InspectorConfig] = None):
        self.root = Path(root)
        self.config = config or InspectorConfig()
        self.logger = logging.getLogger(__name__)

    @property
    def index_path(self) -> Path:
        return self.root / "metadata.json"

    def session_dir(self, source_file: Optional[Union[str, Path]] = None) -> Path:
        base_dir = self.root / "sessions"
        if source_file:
            return base_dir / Path(source_file).stem
        return base_dir

    def _load_index(self) -> Dict[str, Any]:
        if not self.index_path.exists():
            return {'version': INDEX_VERSION, 'sessions': {}}

        try:
            with open(self.index_path, 'r', encoding='utf-8') as f:
                index = json.load(f)
        except json.JSONDecodeError as e:
            self.logger.warning(f"Session index is unreadable, starting a new one: {e}")
            return {'version': INDEX_VERSION, 'sessions': {}}
        except OSError as e:
            raise SessionIOError(str(self.index_path), str(e)) from e

        if not isinstance(index.get('sessions'), dict):
            index['sessions'] = {}
        return index

    def _save_index(self, index: Dict[str, Any]):
        try:
            self.index_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.index_path, 'w', encoding='utf-8') as f:
                json.dump(index, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise SessionIOError(str(self.index_path), str(e)) from e

    def _session_filename(self, name: Optional[str], opt_level: Optional[str]) -> str:
        extension = ".json.gz" if self.config.compress_sessions else ".json"
        if name:
            if name.endswith((".json", ".json.gz")):
                return name
            return name + extension

        timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S-%f")
        opt_suffix = f"-{opt_level.lstrip('-')}" if opt_level else ""
        return f"{timestamp}{opt_suffix}{extension}"

    def save_session(self, pipeline: Pipeline, source_file: Union[str, Path],
                     compilation: Optional[Dict[str, Any]] = None,
                     name: Optional[str] = None) -> Path:
        """Save a pipeline for a source file and register it in the index"""
        if pipeline.passes_count() == 0:
            raise ValueError("No passes to save")

        compilation = compilation or {}
        source = session_codec.source_metadata(source_file)

        session_dir = self.session_dir(source_file)
        filename = self._session_filename(name, compilation.get('opt_level'))
        file_path = session_dir / filename

        info = session_codec.save_to_file(file_path, pipeline, source, compilation)

        index = self._load_index()
        source_key = Path(source_file).name
        sessions = index['sessions'].setdefault(source_key, [])
        # A save under an existing file name replaces that entry
        sessions[:] = [s for s in sessions if s.get('file') != str(file_path)]
        sessions.insert(0, {
            'timestamp': time.time(),
            'name': name,
            'opt_level': compilation.get('opt_level'),
            'checksum': source.get('checksum'),
            'file': str(file_path),
            'size': info['written_size'],
            'passes': pipeline.passes_count(),
            'changed_passes': pipeline.changed_count(),
        })

        # Retention: keep the newest max_sessions_per_file entries
        max_sessions = self.config.max_sessions_per_file
        for old_session in sessions[max_sessions:]:
            self._delete_file(old_session.get('file'))
        del sessions[max_sessions:]

        self._save_index(index)

        try:
            (session_dir / LATEST_POINTER).write_text(filename, encoding='utf-8')
        except OSError as e:
            self.logger.warning(f"Could not update latest pointer: {e}")

        self.logger.info(f"Saved session {filename} for {source_key}")
        return file_path

    def _delete_file(self, file_path: Optional[str]):
        if not file_path:
            return
        try:
            Path(file_path).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Could not delete session file {file_path}: {e}")

    def list_sessions(self, source_file: Union[str, Path]) -> List[Dict[str, Any]]:
        """Sessions for one source file, newest first, with 1-based index"""
        index = self._load_index()
        source_key = Path(source_file).name
        sessions = sorted(index['sessions'].get(source_key, []),
                          key=lambda s: s.get('timestamp') or 0, reverse=True)
        for i, session in enumerate(sessions, start=1):
            session['index'] = i
            session['source_key'] = source_key
        return sessions

    def list_all_sessions(self) -> List[Dict[str, Any]]:
        """Sessions across every source file, newest first"""
        index = self._load_index()
        all_sessions = []
        for source_key, sessions in index['sessions'].items():
            for session in sessions:
                session['source_key'] = source_key
                all_sessions.append(session)

        all_sessions.sort(key=lambda s: s.get('timestamp') or 0, reverse=True)
        for i, session in enumerate(all_sessions, start=1):
            session['index'] = i
        return all_sessions

    def find_session(self, source_file: Union[str, Path],
                     name_or_index: Union[str, int, None] = None) -> Dict[str, Any]:
        """Latest session, the Nth newest (int), or one matched by name/file prefix"""
        sessions = self.list_sessions(source_file)
        if not sessions:
            raise SessionNotFound(f"No saved sessions for {source_file}")

        if name_or_index is None:
            return sessions[0]

        if isinstance(name_or_index, int):
            if 1 <= name_or_index <= len(sessions):
                return sessions[name_or_index - 1]
            raise SessionNotFound(f"Session index {name_or_index} not found")

        for session in sessions:
            if session.get('name') == name_or_index or \
                    Path(session.get('file', '')).name.startswith(name_or_index):
                return session
        raise SessionNotFound(f"Session '{name_or_index}' not found")

    def load_session(self, source_file: Union[str, Path],
                     name_or_index: Union[str, int, None] = None) -> DecodedSession:
        """Load a stored session; drift against the source is only logged"""
        session = self.find_session(source_file, name_or_index)
        decoded = session_codec.load_from_file(session['file'])

        warning = session_codec.validate_source(decoded.metadata)
        if warning:
            self.logger.warning(warning)
        return decoded

    def delete_session(self, source_file: Union[str, Path], name_or_index: Union[str, int]) -> Dict[str, Any]:
        session = self.find_session(source_file, name_or_index)
        self._delete_file(session.get('file'))

        index = self._load_index()
        source_key = Path(source_file).name
        index['sessions'][source_key] = [
            s for s in index['sessions'].get(source_key, [])
            if s.get('file') != session.get('file')
        ]
        self._save_index(index)

        self.logger.info(f"Deleted session: {session.get('name') or session.get('file')}")
        return session

    def cleanup_old_sessions(self, source_file: Optional[Union[str, Path]] = None,
                             max_age_days: Optional[int] = None) -> int:
        """Delete sessions older than the age limit. Returns the number deleted."""
        if max_age_days is None:
            max_age_days = self.config.max_age_days
        cutoff_time = time.time() - max_age_days * 24 * 60 * 60

        index = self._load_index()
        if source_file:
            keys = [Path(source_file).name]
        else:
            keys = list(index['sessions'])

        deleted_count = 0
        for source_key in keys:
            kept_sessions = []
            for session in index['sessions'].get(source_key, []):
                timestamp = session.get('timestamp')
                if timestamp is not None and timestamp < cutoff_time:
                    self._delete_file(session.get('file'))
                    deleted_count += 1
                else:
                    kept_sessions.append(session)
            index['sessions'][source_key] = kept_sessions

        self._save_index(index)

        if deleted_count:
            self.logger.info(f"Cleaned up {deleted_count} old session(s)")
        return deleted_count
