#!/usr/bin/env python3
"""
LLVM Pipeline Inspector
Loads an LLVM pass-pipeline trace (or a saved session) and shows what each pass did.

Usage:
    python main.py --trace trace.txt --list          # Grouped pass list
    python main.py --trace trace.txt --show 12       # Diff for pass 12
    python main.py --session run.json.gz --stats     # Statistics from a saved session
    python main.py --help                            # Show full help
"""

import argparse
import sys
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from data_types import InspectorConfig
from errors import InspectorError, SessionError
from inspector import PipelineInspector, setup_logging
from reporter import ReportGenerator
from session_store import SessionStore
import ir_stats


def load_default_config() -> Dict[str, Any]:
    """Load default configuration from config file"""
    config_file = Path(__file__).parent.parent / "config" / "default_config.json"

    if config_file.exists():
        with open(config_file, 'r') as f:
            return json.load(f)

    # Fallback default config
    return {
        "strip_debug_metadata": False,
        "chunk_size": 50,
        "stats_chunk_size": 100,
        "session_dir": ".pipeline-inspector",
        "compress_sessions": True,
        "max_sessions_per_file": 10,
        "max_age_days": 30
    }


def create_cli_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser"""

    parser = argparse.ArgumentParser(
        description="LLVM Pipeline Inspector - Step through the passes of an LLVM optimization pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Produce a trace and list its passes
  opt -O2 -print-changed -print-module-scope in.ll -disable-output 2> trace.txt
  python main.py --trace trace.txt --list

  # Show what pass 7 did, with debug metadata removed
  python main.py --trace trace.txt --show 7 --strip-debug-metadata

  # Save a session and reload it later
  python main.py --trace trace.txt --save run.json.gz
  python main.py --session run.json.gz --next-changed 7

  # Keep sessions per source file in the session store
  python main.py --trace trace.txt --source-file in.c --store
  python main.py --trace trace.txt --source-file in.c --list-sessions

  # Write a JSON report with per-pass change statistics
  python main.py --trace trace.txt --report output/report.json
        """)

    # Input (exactly one)
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--trace",
        type=str,
        help="Pipeline trace file (stderr of opt -print-changed / -print-after-all)"
    )

    source.add_argument(
        "--session",
        type=str,
        help="Saved session file (.json or .json.gz)"
    )

    # Actions
    parser.add_argument(
        "--save",
        type=str,
        default=None,
        help="Save the loaded pipeline as a session file"
    )

    parser.add_argument(
        "--source-file",
        type=str,
        default=None,
        help="Source file recorded in the saved session (checksum used for drift detection)"
    )

    parser.add_argument(
        "--store",
        action="store_true",
        help="Save the loaded pipeline into the session store for --source-file"
    )

    parser.add_argument(
        "--list-sessions",
        action="store_true",
        help="List sessions stored for --source-file"
    )

    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the grouped pass list"
    )

    parser.add_argument(
        "--show",
        type=int,
        default=None,
        metavar="N",
        help="Show statistics and unified diff for pass N (1-based)"
    )

    parser.add_argument(
        "--next-changed",
        type=int,
        default=None,
        metavar="N",
        help="Print the index of the first changed pass after N"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Print IR statistics for every pass"
    )

    parser.add_argument(
        "--report",
        type=str,
        default=None,
        help="Write a JSON report with per-pass change statistics"
    )

    # Presentation
    parser.add_argument(
        "--strip-debug-metadata",
        action="store_true",
        help="Hide debug metadata (!dbg attachments, #dbg_ records, llvm.dbg calls) in views"
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Write the log to this file"
    )

    # Verbosity
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose terminal output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal terminal output (errors only)"
    )

    return parser


def create_inspector_config(args, default_config: Dict) -> InspectorConfig:
    """Create InspectorConfig from CLI args and defaults"""

    return InspectorConfig(
        strip_debug_metadata=args.strip_debug_metadata or default_config.get("strip_debug_metadata", False),
        chunk_size=default_config.get("chunk_size", 50),
        stats_chunk_size=default_config.get("stats_chunk_size", 100),
        session_dir=default_config.get("session_dir", ".pipeline-inspector"),
        compress_sessions=default_config.get("compress_sessions", True),
        max_sessions_per_file=default_config.get("max_sessions_per_file", 10),
        max_age_days=default_config.get("max_age_days", 30),
        verbose=args.verbose,
        quiet=args.quiet
    )


def print_stats_table(inspector: PipelineInspector):
    inspector.compute_stats()
    print(f"Initial: {ir_stats.format_compact(ir_stats.count(inspector.pipeline.initial_snapshot))}")
    for index in range(1, inspector.passes_count() + 1):
        print(inspector.stats_line(index))


def print_stored_sessions(store: SessionStore, source_file: str):
    sessions = store.list_sessions(source_file)
    if not sessions:
        print(f"No stored sessions for {source_file}")
        return

    for session in sessions:
        timestamp = session.get('timestamp')
        saved_at = (datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")
                    if isinstance(timestamp, (int, float)) else "unknown time")
        label = session.get('name') or Path(session.get('file') or "unnamed").name
        print(f"{session['index']:>3}. {saved_at}  {label}  "
              f"({session.get('passes')} passes, {session.get('changed_passes')} changed)")


def run(args, config: InspectorConfig) -> int:
    inspector = PipelineInspector(config)
    reporter = ReportGenerator(config)

    if args.trace:
        if not Path(args.trace).exists():
            print(f" Error: trace file not found: {args.trace}")
            return 2
        inspector.load_trace_file(args.trace)
    else:
        inspector.load_session(args.session)

    if inspector.passes_count() == 0:
        print(" Warning: no passes found in input")

    reporter.print_terminal_summary(inspector)

    if args.list:
        for line in reporter.format_pass_list(inspector, args.show):
            print(line)

    if args.show is not None:
        if inspector.get_pass(args.show) is None:
            print(f" Error: pass {args.show} out of range 1..{inspector.passes_count()}")
            return 2
        for line in reporter.format_pass_view(inspector, args.show):
            print(line)

    if args.next_changed is not None:
        found = inspector.next_changed_from(args.next_changed)
        print(found if found is not None else "none")

    if args.stats:
        print_stats_table(inspector)

    if args.report:
        inspector.compute_changes()
        reporter.save_json_report(reporter.build_report(inspector), Path(args.report))
        if not config.quiet:
            print(f"Report written to: {args.report}")

    if args.save:
        info = inspector.save_session(args.save, source_file=args.source_file)
        if not config.quiet:
            print(f"Session saved to: {info['path']} ({info['written_size']} bytes, {info['elapsed_ms']:.1f} ms)")

    if args.store or args.list_sessions:
        if not args.source_file:
            print(" Error: --store and --list-sessions need --source-file")
            return 2
        store = SessionStore(config.session_dir, config)

        if args.store:
            try:
                path = store.save_session(inspector.pipeline, args.source_file, inspector.metadata.compilation)
            except ValueError as e:
                print(f" Error: {e}")
                return 2
            if not config.quiet:
                print(f"Session stored at: {path}")

        if args.list_sessions:
            print_stored_sessions(store, args.source_file)

    return 0


def main(argv=None):
    """Main CLI entry point"""

    parser = create_cli_parser()
    args = parser.parse_args(argv)

    # Load configuration
    default_config = load_default_config()
    config = create_inspector_config(args, default_config)

    setup_logging(Path(args.log_file) if args.log_file else None, verbose=config.verbose)

    try:
        return run(args, config)

    except KeyboardInterrupt:
        print("\n  Interrupted by user")
        return 130
    except SessionError as e:
        print(f" Session error: {e}")
        return 2
    except (InspectorError, OSError) as e:
        print(f" Fatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
