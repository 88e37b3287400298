#!/usr/bin/env python3
"""
Stop guard for the DHH review workflow.

While a review is active, stopping the session is blocked and the
assistant is told to carry on with the remaining steps. The guard is a
soft nudge, never a hard blocker:

- Context-limit and user-initiated stops are always allowed
- Missing, inactive, or stale (>2h) state allows the stop
- At most `max_reinforcements` blocks per review
- Any error allows the stop
"""
import enum
import json
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from review_config import ReviewConfig
from review_hook_io import parse_hook_input
from review_logger import JsonLogger, get_logger, null_logger
from review_state import (
    DEFAULT_STALE_AFTER,
    JsonFileStateStore,
    ReviewState,
    StateStore,
    utc_now,
)

DEFAULT_MAX_REINFORCEMENTS = 10
SKIP_ENV_VAR = 'CLAUDE_SKIP_DHH_REVIEW'

CONTEXT_LIMIT_PHRASES = (
    "context_limit",
    "context_window",
    "token_limit",
    "max_tokens",
    "conversation_too_long",
    "input_too_long",
)
# Whole-reason matches
ABORT_REASONS = ("aborted", "abort", "cancel", "interrupt")
# Substring matches
ABORT_PHRASES = ("user_cancel", "user_interrupt", "ctrl_c", "manual_stop")

REVIEW_STEPS = (
    "Step 1: Identify files to review",
    "Step 2: Run automated checks (rubocop, brakeman)",
    "Step 3: Invoke dhh-code-reviewer agent",
    "Step 4: Generate and present the review report",
    "Step 5: Ask user about fixes, then run: rm .omc/state/dhh-review-state.json",
)


class Decision(enum.Enum):
    ALLOW = "allow"
    BLOCK = "block"


@dataclass(frozen=True)
class StopDecision:
    """Outcome of a Stop hook run. `reason` on an allow is only logged."""

    decision: Decision
    reason: str = ""

    @classmethod
    def allow(cls, reason: str = "") -> "StopDecision":
        return cls(Decision.ALLOW, reason)

    @classmethod
    def block(cls, reason: str) -> "StopDecision":
        return cls(Decision.BLOCK, reason)

    @property
    def blocked(self) -> bool:
        return self.decision is Decision.BLOCK

    def to_output(self) -> str:
        """Hook stdout: empty for allow, one JSON line for block."""
        if not self.blocked:
            return ""
        return json.dumps({"decision": "block", "reason": self.reason})


def _raw_stop_reason(payload: dict):
    return payload.get('stop_reason') or payload.get('stopReason') or ""


def get_stop_reason(payload: dict) -> str:
    reason = _raw_stop_reason(payload)
    return reason.lower() if isinstance(reason, str) else ""


def has_malformed_stop_reason(payload: dict) -> bool:
    """A stop reason that is set but not a string can't be classified."""
    return not isinstance(_raw_stop_reason(payload), str)


def is_context_limit_stop(payload: dict) -> bool:
    reason = get_stop_reason(payload)
    return any(phrase in reason for phrase in CONTEXT_LIMIT_PHRASES)


def is_user_abort(payload: dict) -> bool:
    if payload.get('user_requested') or payload.get('userRequested'):
        return True
    reason = get_stop_reason(payload)
    return reason in ABORT_REASONS or any(phrase in reason for phrase in ABORT_PHRASES)


def resolve_directory(payload: dict) -> str:
    """Project directory from the payload, falling back to the process cwd."""
    for key in ('cwd', 'directory'):
        value = payload.get(key)
        if value and isinstance(value, str):
            return value
    return os.getcwd()


def build_reinforcement_message(state: ReviewState) -> str:
    lines = [
        "[DHH-REVIEW] Review not complete. Continue working through all steps.",
        f"Target: {state.target or 'unknown'}",
        "",
        "Complete all steps in order:",
    ]
    lines.extend(f"  {step}" for step in REVIEW_STEPS)
    return "\n".join(lines)


class StopGuard:
    """Decides whether a Stop event may end the session."""

    def __init__(
        self,
        store: StateStore,
        max_reinforcements: int = DEFAULT_MAX_REINFORCEMENTS,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[JsonLogger] = None,
    ):
        self.store = store
        self.max_reinforcements = max_reinforcements
        self.stale_after = stale_after
        self.clock = clock
        self.logger = logger or null_logger()

    @classmethod
    def from_config(cls, store: StateStore, config: ReviewConfig,
                    logger: Optional[JsonLogger] = None) -> "StopGuard":
        return cls(
            store,
            max_reinforcements=config.get_max_reinforcements(),
            stale_after=config.get_stale_after(),
            logger=logger,
        )

    def evaluate(self, payload: dict) -> StopDecision:
        if has_malformed_stop_reason(payload):
            return StopDecision.allow("unclassifiable stop reason")
        if is_context_limit_stop(payload):
            return StopDecision.allow("context limit")
        if is_user_abort(payload):
            return StopDecision.allow("user abort")

        state = self.store.load()
        if state is None:
            return StopDecision.allow("no review in progress")
        if not state.active:
            return StopDecision.allow("review inactive")

        now = self.clock()
        if state.is_stale(now, self.stale_after):
            return StopDecision.allow("review state stale")

        count = state.reinforcement_count + 1
        if count > self.max_reinforcements:
            return StopDecision.allow("reinforcement limit reached")

        state.reinforcement_count = count
        state.touch(now)
        if not self.store.save(state):
            # Block anyway: the ceiling only holds while writes succeed
            self.logger.warning(
                "Review state not persisted; reinforcement count not advanced",
                reinforcement_count=count,
            )

        return StopDecision.block(build_reinforcement_message(state))


def _default_store_factory(project_dir: str, logger: JsonLogger) -> StateStore:
    return JsonFileStateStore.for_project(project_dir, logger=logger)


def run_stop_hook(
    stdin_content: str,
    config_loader: Callable[[str], ReviewConfig] = ReviewConfig,
    store_factory: Callable[[str, JsonLogger], StateStore] = _default_store_factory,
    env: Optional[Any] = None,
) -> StopDecision:
    """
    Full Stop hook run: parse input, load config and state, decide.

    FAIL OPEN - every exception maps to an allow.
    """
    env = os.environ if env is None else env
    logger: Optional[JsonLogger] = None

    try:
        payload, parse_error = parse_hook_input(stdin_content)

        if payload is None:
            return StopDecision.allow("null payload")

        if env.get(SKIP_ENV_VAR):
            return StopDecision.allow(f"{SKIP_ENV_VAR} set")

        project_dir = resolve_directory(payload)
        config = config_loader(project_dir)
        logger = get_logger(
            config.get_logging_config(),
            base_context={
                "hook": "Stop",
                "session": payload.get('session_id'),
                "project_dir": project_dir,
            },
        )
        if parse_error:
            logger.warning("Hook input parse error", error=parse_error)

        if not config.is_enabled():
            logger.debug("Review guard disabled by config")
            return StopDecision.allow("disabled by config")

        guard = StopGuard.from_config(store_factory(project_dir, logger), config, logger=logger)
        decision = guard.evaluate(payload)

        if decision.blocked:
            logger.info("Blocking stop - review in progress")
        else:
            logger.debug("Allowing stop", reason=decision.reason)
        return decision

    except Exception as e:
        # Config may not have loaded yet - fall back to the default log file
        logger = logger or get_logger(base_context={"hook": "Stop"})
        logger.error("Unhandled error in Stop hook", error=str(e))
        return StopDecision.allow("internal error")
