#!/usr/bin/env python3
"""
Data structures and configuration for the LLVM Pipeline Inspector
Shared types used across all modules.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Dict, Tuple, Optional, Any, Union


Lines = Tuple[str, ...]


class ScopeKind(Enum):
    """What a pass invocation ran on"""
    MODULE = "module"
    FUNCTION = "function"
    CGSCC = "cgscc"
    LOOP = "loop"
    UNKNOWN = "unknown"


# Scopes whose passes carry a target and are narrowed to it in views
TARGETED_SCOPES = (ScopeKind.FUNCTION, ScopeKind.CGSCC, ScopeKind.LOOP)


@dataclass(frozen=True)
class Scope:
    """Scope of a pass invocation"""
    kind: ScopeKind
    target: Optional[str] = None     # function / SCC name, None for module

    @property
    def is_scoped(self) -> bool:
        return self.kind in TARGETED_SCOPES and bool(self.target)

    @classmethod
    def module(cls) -> "Scope":
        return cls(ScopeKind.MODULE)

    @classmethod
    def unknown(cls) -> "Scope":
        return cls(ScopeKind.UNKNOWN)


@dataclass(frozen=True)
class InlineIR:
    """Pass carries its own full-module snapshot"""
    lines: Lines


@dataclass(frozen=True)
class IndexRef:
    """Snapshot identical to the resolved snapshot at an earlier pass (0 = initial)"""
    index: int


IrRef = Union[InlineIR, IndexRef]


@dataclass(frozen=True)
class DiffStats:
    """Informational before/after line statistics"""
    lines_before: int
    lines_after: int
    lines_changed: int

    def to_dict(self) -> Dict[str, int]:
        return {
            'lines_before': self.lines_before,
            'lines_after': self.lines_after,
            'lines_changed': self.lines_changed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiffStats":
        return cls(
            lines_before=int(data['lines_before']),
            lines_after=int(data['lines_after']),
            lines_changed=int(data['lines_changed']),
        )


@dataclass
class PassRecord:
    """One pass boundary observed in the trace"""
    name: str                        # Base pass name, e.g. "InstCombinePass"
    scope: Scope
    changed: bool                    # Reported by the trace, never recomputed
    ir_ref: IrRef

    # Derived fields attached by later stages (None = not yet computed)
    diff_stats: Optional[DiffStats] = None
    stats: Optional[Dict[str, int]] = None
    remarks: Optional[List[Any]] = None

    @property
    def display_name(self) -> str:
        """Pass name with its scope suffix, as the compiler prints it"""
        kind, target = self.scope.kind, self.scope.target
        if kind == ScopeKind.MODULE:
            return f"{self.name} on [module]"
        if target is None:
            return self.name
        if kind == ScopeKind.CGSCC:
            return f"{self.name} on ({target})"
        return f"{self.name} on {target}"


@dataclass(frozen=True)
class Pipeline:
    """
    The ordered pass records plus the snapshot taken before any pass ran.
    Pass indices are 1-based; index 0 denotes the initial snapshot.
    """
    initial_snapshot: Lines = ()
    passes: Tuple[PassRecord, ...] = ()

    def passes_count(self) -> int:
        return len(self.passes)

    def get_pass(self, index: int) -> Optional[PassRecord]:
        if 1 <= index <= len(self.passes):
            return self.passes[index - 1]
        return None

    def changed_count(self) -> int:
        return sum(1 for p in self.passes if p.changed)


@dataclass
class GroupMember:
    """One function/SCC entry of a collapsed group"""
    target: Optional[str]
    original_index: int


@dataclass
class StandaloneGroup:
    """A module-scoped pass shown on its own"""
    original_index: int
    display_index: int = 0


@dataclass
class CollapsedGroup:
    """Run of same-named non-module passes folded into one entry"""
    pass_name: str
    scope_kind: ScopeKind
    members: List[GroupMember] = field(default_factory=list)
    folded: bool = True
    has_changes: bool = False
    display_index: int = 0

    def targets(self) -> List[Optional[str]]:
        return [m.target for m in self.members]


Group = Union[StandaloneGroup, CollapsedGroup]


@dataclass
class DiffView:
    """Before/after view of one pass, computed on demand"""
    before_name: str
    before_lines: Lines
    after_name: str
    after_lines: Lines
    stats: DiffStats


@dataclass
class InspectorConfig:
    """Configuration for resolution, diffing and session storage"""
    # Presentation
    strip_debug_metadata: bool = False   # Drop !dbg attachments and metadata lines

    # Batch scheduling
    chunk_size: int = 50                 # Passes per change-detection chunk
    stats_chunk_size: int = 100          # Passes per statistics chunk

    # Session storage
    session_dir: str = ".pipeline-inspector"
    compress_sessions: bool = True       # Write sessions as .json.gz
    max_sessions_per_file: int = 10
    max_age_days: int = 30

    # Behavior
    verbose: bool = False
    quiet: bool = False

    def __post_init__(self):
        """Reject nonsensical chunk sizes early"""
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.stats_chunk_size < 1:
            raise ValueError(f"stats_chunk_size must be positive, got {self.stats_chunk_size}")


@dataclass
class ParsedHeader:
    """Represents a parsed pass header"""
    kind: str                # "start", "before" or "after"
    pass_name: str           # Clean pass name ("" for the start marker)
    scope: Scope
    omitted: bool            # "omitted because no change"
    original_line: str       # Original header line
