"""Span helper for recording call timings."""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from .logger import log_event


@contextmanager
def span(name: str, session_id: Optional[str] = None, events: Optional[List[Dict[str, Any]]] = None) -> Iterator[None]:
    start = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        if events is not None:
            events.append({"span": name, "ms": elapsed_ms})
        log_event("span", session_id, decision=name, ms=elapsed_ms)


__all__ = ["span"]
