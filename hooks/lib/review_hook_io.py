"""Stdin/stdout plumbing shared by the review hooks."""
import json
import os
import sys
import threading
from typing import Any, Dict, Optional, Tuple

STDIN_TIMEOUT_SECONDS = 5.0
_CHUNK_SIZE = 65536


def read_stdin(timeout: float = STDIN_TIMEOUT_SECONDS, stream=None) -> str:
    """
    Read all of stdin, giving up after `timeout` seconds.

    The read happens on a daemon thread so a host that never closes the
    pipe can't hang the hook. On timeout (or read error) whatever arrived
    so far is returned.

    Streams backed by a file descriptor are read with os.read: a daemon
    thread left blocked inside a buffered reader holds its lock, and the
    interpreter aborts on that lock at shutdown.

    Args:
        timeout: Seconds to wait for EOF
        stream: Binary or text stream (default: sys.stdin)

    Returns:
        Decoded content (possibly partial, possibly empty)
    """
    if stream is None:
        stream = sys.stdin

    fd = _fileno(stream)
    chunks: list = []

    def _read_chunk():
        if fd is not None:
            return os.read(fd, _CHUNK_SIZE)
        return stream.read(_CHUNK_SIZE)

    def _reader() -> None:
        try:
            while True:
                chunk = _read_chunk()
                if not chunk:
                    break
                chunks.append(chunk)
        except (OSError, ValueError):
            # Closed or broken pipe - keep what we have
            pass

    reader = threading.Thread(target=_reader, name='stdin-reader', daemon=True)
    reader.start()
    reader.join(timeout)

    collected = list(chunks)
    if collected and isinstance(collected[0], bytes):
        return b''.join(collected).decode('utf-8', errors='replace')
    return ''.join(collected)


def _fileno(stream) -> Optional[int]:
    """OS-level descriptor behind a stream, or None for in-memory streams."""
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        # io.BytesIO/StringIO raise io.UnsupportedOperation (an OSError)
        return None


def parse_hook_input(stdin_content: str) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    Parse hook input JSON.

    Fail-open: malformed or non-object input yields an empty dict plus an
    error description rather than an exception.

    Returns:
        Tuple of (input_data, error). input_data is None only for a literal
        JSON null, which carries no event at all.
    """
    if not stdin_content or not stdin_content.strip():
        return {}, None

    try:
        input_data = json.loads(stdin_content)
    except (json.JSONDecodeError, ValueError) as e:
        return {}, f"JSON parse error: {e}"

    if input_data is None:
        return None, "Payload is null"

    if not isinstance(input_data, dict):
        return {}, f"Expected dict, got {type(input_data).__name__}"

    return input_data, None


def emit_decision(decision, stream=None) -> None:
    """Print a hook decision to stdout; an allow prints nothing."""
    output = decision.to_output()
    if output:
        stream = stream or sys.stdout
        stream.write(output + "\n")
        stream.flush()
