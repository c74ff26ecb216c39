from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional, Set, Dict, Any, Hashable
import time
from datetime import datetime, timezone

# --- timing helpers ---
def utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")

def mono_ts() -> float:
    # Monotonic high-res timestamp (immune to system clock changes)
    return time.perf_counter()

# --- core enums ---
class EventType(Enum):
    """Top-level classifier for event routing and logging."""
    KEY = auto()
    FOCUS = auto()
    SCAN = auto()

class KeyAction(Enum):
    DOWN = "down"
    UP = "up"

# --- base event ---
@dataclass(frozen=True)
class BaseEvent:
    """Common shape for all events."""
    etype: EventType = field(init=False)         # auto-set by subclasses
    t_utc: Optional[str] = None                  # lazy; materialized on serialize
    t_mono: float = field(default_factory=mono_ts)
    app: Optional[str] = None                    # focused app when the event was consumed

    def to_record(self) -> Dict[str, Any]:
        return {
            "etype": self.etype.name,
            "t_utc": self.t_utc or utc_iso(),
            "t_mono": self.t_mono,
            "app": self.app,
        }

# --- key event ---
@dataclass(frozen=True)
class KeyEvent(BaseEvent):
    """
    One keystroke as seen by a hook.
    key_code follows DOM keyCode numbering (Enter=13, Tab=9, 'A'=65).
    target is the opaque identity of whatever had focus; compared by equality only.
    """
    key: str = ""
    action: KeyAction = KeyAction.DOWN
    mods: Set[str] = field(default_factory=set)  # {"ctrl","shift","alt","cmd"}
    key_code: Optional[int] = None
    target: Optional[Hashable] = None

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.KEY)

    @property
    def t_mono_ms(self) -> float:
        return self.t_mono * 1000.0

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "key": self.key,
            "action": self.action.value,
            "mods": sorted(self.mods),
            "key_code": self.key_code,
            "target": self.target,
        })
        return base

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "KeyEvent":
        """Inverse of to_record(); raises KeyError/ValueError on bad input."""
        if rec.get("etype", "KEY") != "KEY":
            raise ValueError(f"not a key record: etype={rec.get('etype')!r}")
        code = rec.get("key_code")
        return cls(
            key=str(rec.get("key", "")),
            action=KeyAction(rec.get("action", KeyAction.DOWN.value)),
            mods=set(rec.get("mods") or ()),
            key_code=int(code) if code is not None else None,
            target=rec.get("target"),
            t_mono=float(rec["t_mono"]),
            t_utc=rec.get("t_utc"),
            app=rec.get("app"),
        )

@dataclass(frozen=True)
class FocusEvent(BaseEvent):
    """Window/app focus transition. Emitted only when focus changes."""
    app_name: str = "unknown"       # normalized process/app label
    pid: Optional[int] = None
    title: Optional[str] = None     # active window title if available
    dwell_prev_s: Optional[float] = None  # how long previous app had focus

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.FOCUS)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "app_name": self.app_name,
            "pid": self.pid,
            "title": self.title,
            "dwell_prev_s": self.dwell_prev_s,
        })
        return base

    @classmethod
    def from_record(cls, rec: Dict[str, Any]) -> "FocusEvent":
        pid = rec.get("pid")
        return cls(
            app_name=str(rec.get("app_name") or "unknown"),
            pid=int(pid) if pid is not None else None,
            title=rec.get("title"),
            dwell_prev_s=rec.get("dwell_prev_s"),
            t_mono=float(rec["t_mono"]),
            t_utc=rec.get("t_utc"),
        )

@dataclass(frozen=True)
class ScanEvent(BaseEvent):
    """Outcome of one evaluated capture window."""
    payload: str = ""
    accepted: bool = False
    length: int = 0
    avg_interval_ms: float = 0.0
    target: Optional[Hashable] = None

    def __post_init__(self):
        object.__setattr__(self, "etype", EventType.SCAN)

    def to_record(self) -> Dict[str, Any]:
        base = super().to_record()
        base.update({
            "payload": self.payload,
            "accepted": self.accepted,
            "length": self.length,
            "avg_interval_ms": round(self.avg_interval_ms, 3),
            "target": self.target,
        })
        return base
