"""
Structured JSON logging for the DHH review guard.

Hooks talk to Claude Code over stdout, so log records never go there:
they are appended to a file (default) or written to stderr. Logging is
best effort; a record that can't be written is dropped.
"""
import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional


LEVELS = {
    "debug": 10,
    "info": 20,
    "warning": 30,
    "error": 40,
}
DEFAULT_LEVEL = "error"
DEFAULT_LOG_FILE = Path.home() / ".claude" / "dhh-review.log"


def format_record(record: dict) -> str:
    """One JSON line; values json can't encode are stringified."""
    return json.dumps(record, default=str) + "\n"


class Handler:
    """A destination for log records. Subclasses implement write()."""

    def write(self, line: str) -> None:
        raise NotImplementedError

    def emit(self, record: dict) -> None:
        try:
            self.write(format_record(record))
        except (OSError, ValueError, TypeError):
            # Unwritable destination or closed stream: drop the record
            pass


class StderrHandler(Handler):
    def __init__(self, stream=None):
        self.stream = stream or sys.stderr

    def write(self, line: str) -> None:
        self.stream.write(line)
        self.stream.flush()


class FileHandler(Handler):
    """Appends records to a file, creating its directory on first write."""

    def __init__(self, path: Path):
        self.path = Path(path).expanduser()

    def write(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line)


class JsonLogger:
    """
    Level-filtered logger that fans records out to its handlers.

    Every record carries timestamp, level and message, then the bound
    context, then per-call fields. None values are left out.
    """

    def __init__(
        self,
        level: str = DEFAULT_LEVEL,
        handlers: Optional[Iterable[Handler]] = None,
        context: Optional[dict] = None,
    ) -> None:
        self.level_name = (level or DEFAULT_LEVEL).lower()
        self.threshold = LEVELS.get(self.level_name, LEVELS[DEFAULT_LEVEL])
        self.handlers = list(handlers or ())
        self.context = dict(context or {})

    def bind(self, **context: object) -> "JsonLogger":
        """Child logger sharing handlers, with extra context fields."""
        merged = dict(self.context)
        merged.update(_without_none(context))
        return JsonLogger(self.level_name, self.handlers, merged)

    def enabled_for(self, level: str) -> bool:
        return LEVELS.get(level, 0) >= self.threshold

    def debug(self, message: str, **fields: object) -> None:
        self.log("debug", message, **fields)

    def info(self, message: str, **fields: object) -> None:
        self.log("info", message, **fields)

    def warning(self, message: str, **fields: object) -> None:
        self.log("warning", message, **fields)

    def error(self, message: str, **fields: object) -> None:
        self.log("error", message, **fields)

    def log(self, level: str, message: str, **fields: object) -> None:
        if not self.handlers or not self.enabled_for(level):
            return

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
            **self.context,
            **_without_none(fields),
        }
        for handler in self.handlers:
            handler.emit(record)


def _without_none(fields: dict) -> dict:
    return {k: v for k, v in fields.items() if v is not None}


# destination name -> handler factory (given the logging config)
HANDLER_FACTORIES: Dict[str, Callable[[dict], Handler]] = {
    "file": lambda cfg: FileHandler(cfg.get("file") or DEFAULT_LOG_FILE),
    "stderr": lambda cfg: StderrHandler(),
}


def get_logger(logging_config: Optional[dict] = None, base_context: Optional[dict] = None) -> JsonLogger:
    """
    Create a JsonLogger from the `logging` config section.

    Args:
        logging_config: Optional keys: level, destinations (str or list), file
        base_context: Fields included in every record

    Returns:
        JsonLogger; unknown destinations are ignored
    """
    cfg = logging_config or {}
    destinations = cfg.get("destinations", ["file"])
    if isinstance(destinations, str):
        destinations = [destinations]

    handlers = []
    for name in destinations or ():
        factory = HANDLER_FACTORIES.get(str(name or "").lower())
        if factory:
            handlers.append(factory(cfg))

    return JsonLogger(level=cfg.get("level", DEFAULT_LEVEL), handlers=handlers, context=base_context)


def null_logger() -> JsonLogger:
    """Logger with no handlers, for callers that were not given one."""
    return JsonLogger(handlers=())
