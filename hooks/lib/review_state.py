#!/usr/bin/env python3
"""
Review state persistence.

The review workflow writes a small JSON file when a DHH review starts and
removes it once the final step is done. The Stop hook only reads it and
renews it (counter + timestamp); it never deletes it.

State File Format (JSON):
{
    "active": true,
    "target": "app/models/order.rb",
    "started_at": "2026-10-17T12:00:00.000Z",
    "last_checked_at": "2026-10-17T12:05:00.000Z",
    "reinforcement_count": 1
}

Location: <project>/.omc/state/dhh-review-state.json
"""
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from review_logger import JsonLogger, null_logger

STATE_RELATIVE_PATH = Path('.omc') / 'state' / 'dhh-review-state.json'
DEFAULT_STALE_AFTER = timedelta(hours=2)

_KNOWN_FIELDS = ('active', 'target', 'started_at', 'last_checked_at', 'reinforcement_count')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Format as UTC ISO-8601 with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp or epoch milliseconds.

    Accepts 'Z' and numeric offsets; naive values are taken as UTC.
    Numbers are milliseconds since the epoch, as JavaScript tooling writes them.

    Returns:
        Aware datetime, or None if the value is missing or unparseable
    """
    if isinstance(value, bool) or not value:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _coerce_count(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


@dataclass
class ReviewState:
    """
    Persisted state of an in-progress review.

    The hook only owns reinforcement_count and last_checked_at. Everything
    else is kept exactly as the workflow wrote it and saved back unchanged.
    """

    active: Any = False
    target: Any = None
    started_at: Any = None
    last_checked_at: Any = None
    reinforcement_count: int = 0
    # Keys written by the workflow that the hook does not interpret
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "ReviewState":
        extra = {k: v for k, v in data.items() if k not in _KNOWN_FIELDS}
        # An explicit null target survives the round trip
        if 'target' in data and data['target'] is None:
            extra['target'] = None
        return cls(
            active=data.get('active', False),
            target=data.get('target'),
            started_at=data.get('started_at'),
            last_checked_at=data.get('last_checked_at'),
            reinforcement_count=_coerce_count(data.get('reinforcement_count')),
            extra=extra,
        )

    @classmethod
    def begin(cls, target: Optional[str] = None, now: Optional[datetime] = None) -> "ReviewState":
        """Create a freshly started, active review."""
        stamp = format_timestamp(now or utc_now())
        return cls(
            active=True,
            target=target,
            started_at=stamp,
            last_checked_at=stamp,
            reinforcement_count=0,
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            'active': self.active,
            'last_checked_at': self.last_checked_at,
            'reinforcement_count': self.reinforcement_count,
        })
        if self.started_at is not None:
            data['started_at'] = self.started_at
        if self.target is not None:
            data['target'] = self.target
        return data

    def freshness(self) -> Optional[datetime]:
        """Most recent of last_checked_at and started_at (None if neither parses)."""
        stamps = [
            ts for ts in (parse_timestamp(self.last_checked_at), parse_timestamp(self.started_at))
            if ts is not None
        ]
        return max(stamps) if stamps else None

    def is_stale(self, now: Optional[datetime] = None, stale_after: timedelta = DEFAULT_STALE_AFTER) -> bool:
        recent = self.freshness()
        if recent is None:
            return True
        return (now or utc_now()) - recent > stale_after

    def touch(self, now: Optional[datetime] = None) -> None:
        self.last_checked_at = format_timestamp(now or utc_now())


def get_state_path(project_dir: str) -> Path:
    """
    Get path to the review state file for a project.

    Args:
        project_dir: Project root directory

    Returns:
        Path to state JSON file (may not exist)
    """
    return Path(project_dir) / STATE_RELATIVE_PATH


class StateStore(ABC):
    """Where a ReviewState lives between hook invocations."""

    @abstractmethod
    def load(self) -> Optional[ReviewState]:
        """Return the stored state, or None if absent or unreadable."""

    @abstractmethod
    def save(self, state: ReviewState) -> bool:
        """Persist state. Returns False if the write failed."""

    @abstractmethod
    def delete(self) -> bool:
        """Remove the stored state. Returns True if something was removed."""


class JsonFileStateStore(StateStore):
    """
    State stored as a JSON document on disk.

    No locking: concurrent writers are not expected, and the last write wins.
    """

    def __init__(self, path: Path, logger: Optional[JsonLogger] = None):
        self.path = Path(path)
        self.logger = logger or null_logger()

    @classmethod
    def for_project(cls, project_dir: str, logger: Optional[JsonLogger] = None) -> "JsonFileStateStore":
        return cls(get_state_path(project_dir), logger=logger)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[ReviewState]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
            self.logger.warning("Review state unreadable", path=str(self.path), error=str(e))
            return None

        if not isinstance(data, dict):
            self.logger.warning("Review state is not a JSON object", path=str(self.path))
            return None

        return ReviewState.from_dict(data)

    def save(self, state: ReviewState) -> bool:
        temp_path = self.path.with_suffix('.tmp')

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(state.to_dict(), f, indent=2)
                f.flush()
                os.fsync(f.fileno())

            # Atomic rename (POSIX guarantees atomicity)
            os.replace(temp_path, self.path)
            return True
        except OSError as e:
            self.logger.warning("Could not save review state", path=str(self.path), error=str(e))
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    pass
            return False

    def delete(self) -> bool:
        if not self.path.exists():
            return False
        try:
            self.path.unlink()
            return True
        except OSError as e:
            self.logger.warning("Could not delete review state", path=str(self.path), error=str(e))
            return False


class InMemoryStateStore(StateStore):
    """State kept in memory. Stores a copy so callers can't mutate it behind our back."""

    def __init__(self, state: Optional[ReviewState] = None, fail_writes: bool = False):
        self._data = state.to_dict() if state else None
        self.fail_writes = fail_writes
        self.save_calls = 0

    def load(self) -> Optional[ReviewState]:
        if self._data is None:
            return None
        return ReviewState.from_dict(dict(self._data))

    def save(self, state: ReviewState) -> bool:
        self.save_calls += 1
        if self.fail_writes:
            return False
        self._data = state.to_dict()
        return True

    def delete(self) -> bool:
        existed = self._data is not None
        self._data = None
        return existed
