"""Small helpers: cancellable sleeping and recursive map merging."""

from __future__ import annotations

import threading
from collections.abc import Mapping, MutableMapping
from datetime import timedelta
from typing import Any


def sleep_unless_cancelled(cancel: threading.Event, delay: timedelta | float) -> bool:
    """Sleep for ``delay``; return True if it elapsed, False if ``cancel`` was set first."""
    seconds = delay.total_seconds() if isinstance(delay, timedelta) else float(delay)
    if cancel.is_set():
        return False
    return not cancel.wait(max(seconds, 0.0))


def _key_text(key: Any) -> str:
    if isinstance(key, bool):
        return "true" if key else "false"
    return str(key)


def copy_map(dst: MutableMapping[str, Any], src: Mapping[str, Any]) -> None:
    """Merge ``src`` into ``dst`` recursively; nested mappings are merged, other values overwritten."""
    for key, value in src.items():
        if key not in dst:
            dst[key] = value
            continue
        current = dst[key]
        if not isinstance(current, Mapping) or not isinstance(value, Mapping):
            dst[key] = value
            continue
        merged = {_key_text(k): v for k, v in current.items()}
        incoming = {_key_text(k): v for k, v in value.items()}
        copy_map(merged, incoming)
        dst[key] = merged