"""
DHH Review Guard Library

Keeps a DHH code review running until its workflow says it is done.

Architecture:
- review_state.py: ReviewState model and state stores (.omc/state/)
- review_config.py: Configuration loading (global → project → local)
- review_logger.py: JSON-lines logging
- review_hook_io.py: Bounded stdin read, input parsing, decision output
- review_guard.py: StopGuard decision logic and fail-open hook runner

Usage:
    from review_guard import StopGuard
    from review_state import JsonFileStateStore

    store = JsonFileStateStore.for_project('/path/to/project')
    decision = StopGuard(store).evaluate({"stop_reason": "end_turn"})
    print(decision.to_output())
"""

__version__ = "1.0.0"
