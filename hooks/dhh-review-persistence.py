#!/usr/bin/env python3
"""
Stop Hook for the DHH review workflow.

Triggered when Claude Code is about to stop. While a DHH review is in
progress (.omc/state/dhh-review-state.json with active: true), blocks the
stop and lists the remaining review steps.

Input (stdin JSON):
{
    "session_id": "abc123",
    "hook_event_name": "Stop",
    "cwd": "/path/to/project",
    "stop_reason": "end_turn",      // optional (also: stopReason)
    "user_requested": false         // optional (also: userRequested)
}

Output (to block stop):
{
    "decision": "block",
    "reason": "[DHH-REVIEW] Review not complete. ..."
}

Output (to allow stop):
- Empty (no output)

Exit code is always 0.
"""
import sys
from pathlib import Path

# Add lib to path
lib_path = Path(__file__).resolve().parent / 'lib'
sys.path.insert(0, str(lib_path))


def main() -> int:
    """Hook entry point."""
    try:
        # Imported here so a broken install still fails open
        from review_guard import run_stop_hook
        from review_hook_io import emit_decision, read_stdin

        decision = run_stop_hook(read_stdin())
        emit_decision(decision)
    except Exception:
        # FAIL OPEN - never block on errors
        pass
    return 0


if __name__ == '__main__':
    sys.exit(main())
