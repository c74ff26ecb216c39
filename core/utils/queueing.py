# core/utils/queueing.py
from __future__ import annotations
from queue import Queue, Full, Empty
from typing import Any, Optional

def safe_put(q: Queue, item) -> None:
    """
    Put without blocking; when the queue is full the oldest item is dropped.
    Hook threads must never stall on a slow consumer.
    """
    try:
        q.put_nowait(item)
    except Full:
        try:
            q.get_nowait()  # drop oldest
        except Empty:
            pass
        q.put_nowait(item)

def get_or_none(q: Queue, timeout: float) -> Optional[Any]:
    """Blocking get bounded by `timeout`; None when nothing arrived."""
    try:
        return q.get(timeout=timeout)
    except Empty:
        return None
