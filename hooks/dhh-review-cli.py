#!/usr/bin/env python3
"""
DHH Review CLI Tool

Manage the state that keeps a DHH review running across Stop events.

Usage:
    dhh-review start --target "app/models/order.rb"   # Begin a review
    dhh-review status                                  # Show current review
    dhh-review clear                                   # Finish / abandon review

Shell Alias (add to ~/.zshrc or ~/.bashrc):
    alias dhh-review='python3 ~/.claude/hooks/dhh-review-cli.py'
"""
import argparse
import json
import os
import sys
from pathlib import Path

# Add lib to path (resolve symlinks to find actual location)
lib_path = Path(__file__).resolve().parent / 'lib'
sys.path.insert(0, str(lib_path))

from review_config import ReviewConfig
from review_state import JsonFileStateStore, ReviewState, utc_now


def get_project_dir(args) -> str:
    return args.dir or os.getcwd()


def _describe(state: ReviewState, config: ReviewConfig) -> dict:
    """Summarize a state the way the Stop hook would see it."""
    now = utc_now()
    stale = state.is_stale(now, config.get_stale_after())
    limit = config.get_max_reinforcements()
    freshness = state.freshness()
    return {
        "active": bool(state.active),
        "target": state.target,
        "started_at": state.started_at,
        "last_checked_at": state.last_checked_at,
        "reinforcement_count": state.reinforcement_count,
        "max_reinforcements": limit,
        "stale": stale,
        "idle_seconds": int((now - freshness).total_seconds()) if freshness else None,
        "would_block": bool(state.active) and not stale and state.reinforcement_count + 1 <= limit,
    }


def cmd_start(args) -> int:
    """
    Begin a review by writing fresh, active state.

    Refuses to replace a review that is still active and fresh unless --force.
    """
    project_dir = get_project_dir(args)
    config = ReviewConfig(project_dir)
    store = JsonFileStateStore.for_project(project_dir)

    existing = store.load()
    if existing and existing.active and not existing.is_stale(stale_after=config.get_stale_after()) \
            and not args.force:
        print(f"⚠️  A review is already in progress (target: {existing.target or 'unknown'})",
              file=sys.stderr)
        print("💡 Use --force to start over, or 'dhh-review clear' to finish it", file=sys.stderr)
        return 1

    state = ReviewState.begin(target=args.target)
    if not store.save(state):
        print(f"❌ Could not write {store.path}", file=sys.stderr)
        return 1

    print(f"✅ Review started (target: {state.target or 'unknown'})")
    print(f"   {store.path}")
    return 0


def cmd_status(args) -> int:
    """Show the current review state."""
    project_dir = get_project_dir(args)
    config = ReviewConfig(project_dir)
    store = JsonFileStateStore.for_project(project_dir)

    state = store.load()
    if state is None:
        if getattr(args, 'json', False):
            print(json.dumps({"review": None, "exists": store.exists()}))
        elif store.exists():
            print(f"⚠️  State file unreadable: {store.path}")
        else:
            print("ℹ️  No review in progress")
        return 0

    summary = _describe(state, config)
    if getattr(args, 'json', False):
        print(json.dumps({"review": summary, "exists": True}, indent=2))
        return 0

    print(f"📋 DHH review: {summary['target'] or 'unknown'}")
    print(f"   Active:          {'yes' if summary['active'] else 'no'}")
    print(f"   Started:         {summary['started_at'] or '-'}")
    print(f"   Last checked:    {summary['last_checked_at'] or '-'}")
    print(f"   Reinforcements:  {summary['reinforcement_count']}/{summary['max_reinforcements']}")
    if summary['stale']:
        print("   State:           stale (ignored by Stop hook)")
    elif summary['idle_seconds'] is not None:
        print(f"   State:           fresh ({summary['idle_seconds'] // 60} min idle)")
    if summary['would_block']:
        print("🛑 Next stop will be blocked until the review completes")
    else:
        print("✅ Next stop will be allowed")
    return 0


def cmd_clear(args) -> int:
    """Delete the review state (what Step 5 of the review does)."""
    store = JsonFileStateStore.for_project(get_project_dir(args))

    if store.delete():
        print("✅ Review state cleared")
    elif store.exists():
        print(f"❌ Could not delete {store.path}", file=sys.stderr)
        return 1
    else:
        print("ℹ️  No review state to clear")
    return 0


def main(argv=None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog='dhh-review',
        description='DHH Review CLI - Manage review state for the Stop hook',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
    dhh-review start --target app/models   # Begin a review
    dhh-review start --force                # Replace an in-progress review
    dhh-review status                       # Show current review
    dhh-review status --json                # Machine-readable status
    dhh-review clear                        # Finish the review

Environment Variables:
    CLAUDE_SKIP_DHH_REVIEW=1                # Disable the Stop hook entirely
'''
    )

    subparsers = parser.add_subparsers(dest='command', help='Command')

    # start
    start_parser = subparsers.add_parser('start', help='Begin a review')
    start_parser.add_argument('--target', '-t', help='What is being reviewed')
    start_parser.add_argument('--force', '-f', action='store_true', help='Replace an in-progress review')
    start_parser.add_argument('--dir', '-d', help='Project directory (default: cwd)')

    # status
    status_parser = subparsers.add_parser('status', help='Show current review')
    status_parser.add_argument('--json', action='store_true', help='Output JSON')
    status_parser.add_argument('--dir', '-d', help='Project directory (default: cwd)')

    # clear
    clear_parser = subparsers.add_parser('clear', help='Delete review state')
    clear_parser.add_argument('--dir', '-d', help='Project directory (default: cwd)')

    args = parser.parse_args(argv)

    if not args.command:
        # Default to status
        args.command = 'status'
        args.dir = None
        args.json = False

    commands = {
        'start': cmd_start,
        'status': cmd_status,
        'clear': cmd_clear,
    }

    return commands[args.command](args)


if __name__ == '__main__':
    sys.exit(main())
