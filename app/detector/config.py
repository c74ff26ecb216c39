from __future__ import annotations
import os
from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, Hashable, Iterable, Mapping, Optional

ENTER = 13
TAB = 9

ENV_PREFIX = "SCAN_GUARD_"

@dataclass(frozen=True)
class ScanDetectorConfig:
    # timing (milliseconds)
    evaluation_delay_ms: float = 100.0   # idle time before a capture is evaluated
    max_avg_interval_ms: float = 50.0    # slower than this on average = human typing

    # framing
    start_codes: FrozenSet[int] = frozenset()          # empty = any key opens a capture
    end_codes: FrozenSet[int] = frozenset({ENTER})     # evaluate immediately, never buffered
    min_length: int = 1

    # event handling
    ignore_target: Optional[Hashable] = None
    stop_propagation: bool = False
    prevent_default: bool = False

    validator: Optional[Callable[[str], bool]] = field(default=None, compare=False)

    def __post_init__(self):
        # accept lists/tuples/sets from callers and the CLI
        object.__setattr__(self, "start_codes", frozenset(self.start_codes))
        object.__setattr__(self, "end_codes", frozenset(self.end_codes))

    @property
    def evaluation_delay_s(self) -> float:
        return self.evaluation_delay_ms / 1000.0

    def with_overrides(self, **overrides) -> "ScanDetectorConfig":
        """replace() that skips None values, so unset CLI flags keep the current value."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ScanDetectorConfig":
        """
        Build a config from SCAN_GUARD_* variables:
          EVAL_DELAY_MS, MAX_AVG_INTERVAL_MS, START_CODES, END_CODES (comma separated ints),
          MIN_LENGTH, IGNORE_TARGET, STOP_PROPAGATION, PREVENT_DEFAULT.
        Keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values = {}
        for var, (name, parse) in _ENV_FIELDS.items():
            raw = env.get(prefix + var)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = parse(raw)
            except ValueError as e:
                raise ValueError(f"{prefix + var}: {e}") from None
        return cls().with_overrides(**values).with_overrides(**overrides)

def _parse_codes(raw: str) -> FrozenSet[int]:
    return frozenset(int(p) for p in raw.split(",") if p.strip())

def _parse_bool(raw: str) -> bool:
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")

_ENV_FIELDS = {
    "EVAL_DELAY_MS": ("evaluation_delay_ms", float),
    "MAX_AVG_INTERVAL_MS": ("max_avg_interval_ms", float),
    "START_CODES": ("start_codes", _parse_codes),
    "END_CODES": ("end_codes", _parse_codes),
    "MIN_LENGTH": ("min_length", int),
    "IGNORE_TARGET": ("ignore_target", str.strip),
    "STOP_PROPAGATION": ("stop_propagation", _parse_bool),
    "PREVENT_DEFAULT": ("prevent_default", _parse_bool),
}

def codes(values: Optional[Iterable[int]]) -> Optional[FrozenSet[int]]:
    """CLI helper: None stays None (flag not given), anything else becomes a frozenset."""
    return None if values is None else frozenset(values)
