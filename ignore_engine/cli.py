"""
Command line interface: check, list, lint and watch a workspace
"""
import argparse
import os
import sys
import time
from typing import List, Optional

from .config import EngineConfig
from .errors import IgnoreEngineError
from .manager import IgnoreManager
from .utils import configure_logging, get_logger
from .watchdog_monitor import WatchdogMonitor

logger = get_logger("cli")


def _build_manager(args: argparse.Namespace) -> IgnoreManager:
    config = EngineConfig.from_env(
        ignore_case=True if args.ignore_case else None,
        use_defaults=False if args.no_defaults else None,
    )
    return IgnoreManager(args.root, config=config)


def run_check(manager: IgnoreManager, args: argparse.Namespace) -> int:
    """Print matching paths; exit 0 if any path is ignored, 1 otherwise"""
    any_ignored = False
    for path in args.paths:
        absolute = os.path.abspath(path)
        is_directory = args.dir or os.path.isdir(absolute)
        result = manager.is_ignored(absolute, is_directory)
        any_ignored = any_ignored or result.ignored

        if not result.ignored and not args.non_matching:
            continue
        if not args.verbose:
            if result.ignored:
                print(path)
            continue
        if result.reason is None:
            print(f"::\t{path}")
        else:
            reason = result.reason
            print(f"{reason.file}:{reason.line}:{reason.pattern}\t{path}")

    return 0 if any_ignored else 1


def run_ls(manager: IgnoreManager, args: argparse.Namespace) -> int:
    """Print every file that is not ignored"""
    count = 0
    for file_path in manager.iter_files(os.path.abspath(args.path) if args.path else None):
        print(manager.relative_path(file_path))
        count += 1
    logger.info(f"Listed {count} files")
    return 0


def run_lint(manager: IgnoreManager, args: argparse.Namespace) -> int:
    """Print rule file problems; exit 1 if any error was found"""
    diagnostics = manager.diagnostics(include_warnings=not args.errors_only,
                                      check_unused=args.unused)
    for diagnostic in diagnostics:
        print(str(diagnostic))

    errors = sum(1 for d in diagnostics if d.severity == "error")
    warnings = len(diagnostics) - errors
    print(f"# {len(manager.get_ignore_files())} rule files, "
          f"{errors} errors, {warnings} warnings", file=sys.stderr)
    return 1 if errors else 0


def run_watch(manager: IgnoreManager, args: argparse.Namespace) -> int:
    """Keep rule sets current until interrupted"""
    def report(path: str):
        rule_set = manager.get_rule_set(path)
        if rule_set is None:
            print(f"# removed {path}", file=sys.stderr)
        else:
            print(f"# reloaded {path} ({len(rule_set)} patterns)", file=sys.stderr)

    monitor = WatchdogMonitor(manager, debounce_seconds=args.debounce)
    monitor.start(on_change_callback=report)
    print(f"# Watching {manager.root_path} (Ctrl+C to stop)", file=sys.stderr)
    try:
        while monitor.is_running():
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        monitor.stop()
    return 0


COMMANDS = {
    'check': run_check,
    'ls': run_ls,
    'lint': run_lint,
    'watch': run_watch,
}


def parse_args(args: List[str]) -> argparse.Namespace:
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(prog='ignore-engine',
                                     description='Evaluate gitignore-style rule files')
    parser.add_argument('--root', default='.', help='Workspace root (default: current directory)')
    parser.add_argument('--log-level', help='Log level (TRACE, DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--log-file', help='Also write logs to this file')
    parser.add_argument('--ignore-case', action='store_true', help='Match case-insensitively')
    parser.add_argument('--no-defaults', action='store_true',
                        help='Do not ignore VCS metadata directories by default')
    subparsers = parser.add_subparsers(dest='command', required=True)

    check = subparsers.add_parser('check', help='Check whether paths are ignored')
    check.add_argument('paths', nargs='+', help='Paths to check')
    check.add_argument('-v', '--verbose', action='store_true',
                       help='Show the rule file, line and pattern that decided')
    check.add_argument('-n', '--non-matching', action='store_true',
                       help='Also show paths that are not ignored (with -v)')
    check.add_argument('--dir', action='store_true', help='Treat every path as a directory')

    ls = subparsers.add_parser('ls', help='List files that are not ignored')
    ls.add_argument('path', nargs='?', help='Directory to list (default: root)')

    lint = subparsers.add_parser('lint', help='Report problems in rule files')
    lint.add_argument('--errors-only', action='store_true', help='Skip inspection warnings')
    lint.add_argument('--unused', action='store_true',
                      help='Also warn about entries that match no file or directory')

    watch = subparsers.add_parser('watch', help='Reload rule files as they change')
    watch.add_argument('--debounce', type=float, default=0.5,
                       help='Seconds to wait for a burst of changes to settle')

    return parser.parse_args(args)


def main(args: List[str], manager: Optional[IgnoreManager] = None) -> int:
    """
    Main entry point for the CLI

    Args:
        args: Command line arguments without the program name
        manager: Optional pre-built IgnoreManager to use

    Returns:
        Process exit code
    """
    parsed_args = parse_args(args)
    configure_logging(log_level=parsed_args.log_level, log_file=parsed_args.log_file)

    try:
        if manager is None:
            manager = _build_manager(parsed_args)
        return COMMANDS[parsed_args.command](manager, parsed_args)
    except IgnoreEngineError as e:
        print(f"# ERROR: {e}", file=sys.stderr)
        return 2


def run():
    sys.exit(main(sys.argv[1:]))


if __name__ == "__main__":
    run()
