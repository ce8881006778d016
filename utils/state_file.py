"""Atomic JSON read/write helpers for the engine state file."""

from __future__ import annotations

import errno
import json
import os
import tempfile
import time
from typing import Any

E_JSON_CORRUPT = "E_JSON_CORRUPT"

_TRANSIENT_REPLACE_ERRNOS = {errno.EACCES, errno.EBUSY, errno.EPERM}


class StateFileCorruptError(ValueError):
    """Raised when the state file exists but does not hold a JSON object."""

    code = E_JSON_CORRUPT


def atomic_write_json(
    path: str,
    payload: Any,
    *,
    encoding: str = "utf-8",
    indent: int = 2,
    replace_retries: int = 5,
    replace_base_delay: float = 0.03,
) -> None:
    """Write JSON via temp file + os.replace in the same directory."""

    abs_path = str(path)
    state_dir = os.path.dirname(abs_path) or "."
    os.makedirs(state_dir, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        prefix=f"{os.path.basename(abs_path)}.",
        suffix=".tmp",
        dir=state_dir,
        text=True,
    )
    try:
        with os.fdopen(fd, "w", encoding=encoding) as f:
            json.dump(payload, f, ensure_ascii=False, indent=indent)
            f.flush()
            try:
                os.fsync(f.fileno())
            except OSError:
                pass
        for attempt in range(replace_retries + 1):
            try:
                os.replace(tmp_path, abs_path)
                break
            except OSError as exc:
                transient = int(getattr(exc, "errno", 0) or 0) in _TRANSIENT_REPLACE_ERRNOS
                if (not transient) or attempt >= replace_retries:
                    raise
                time.sleep(replace_base_delay * (1.5**attempt))
    except Exception:
        try:
            os.remove(tmp_path)
        except OSError:
            pass
        raise


def read_json_object(path: str, *, encoding: str = "utf-8-sig") -> dict[str, Any] | None:
    """Return the JSON object stored at `path`, or None when the file is absent."""

    if not os.path.exists(path):
        return None
    with open(path, "r", encoding=encoding) as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise StateFileCorruptError(f"{E_JSON_CORRUPT}: {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise StateFileCorruptError(f"{E_JSON_CORRUPT}: {path}: top-level value is {type(payload).__name__}")
    return payload
