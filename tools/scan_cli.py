from __future__ import annotations
import argparse
import json
import re
import sys
from typing import Callable, Optional

import structlog

from app.detector.config import ScanDetectorConfig, codes
from app.logging_config import configure_logging

log = structlog.get_logger()

def _pattern_validator(pattern: str) -> Callable[[str], bool]:
    rx = re.compile(pattern)
    return lambda payload: rx.fullmatch(payload) is not None

def _add_detector_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--eval-delay-ms", type=float, help="idle time before a capture is evaluated (default 100)")
    p.add_argument("--max-avg-ms", type=float, help="max average gap between keys (default 50)")
    p.add_argument("--start-code", type=int, action="append", help="key code that opens a capture (repeatable)")
    p.add_argument("--end-code", type=int, action="append", help="key code that ends a capture (repeatable, default 13)")
    p.add_argument("--min-length", type=int)
    p.add_argument("--ignore-target", help="focused app whose keys are ignored")
    p.add_argument("--pattern", help="regex the whole payload must match")
    p.add_argument("--debug", action="store_true")

def build_config(args: argparse.Namespace) -> ScanDetectorConfig:
    """Environment (SCAN_GUARD_*) first, then CLI flags."""
    return ScanDetectorConfig.from_env(
        evaluation_delay_ms=args.eval_delay_ms,
        max_avg_interval_ms=args.max_avg_ms,
        start_codes=codes(args.start_code),
        end_codes=codes(args.end_code),
        min_length=args.min_length,
        ignore_target=args.ignore_target,
        validator=_pattern_validator(args.pattern) if args.pattern else None,
    )

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="scan-guard", description="Tell barcode/RFID scanner bursts from human typing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_listen = sub.add_parser("listen", help="Hook the keyboard and report scans until Ctrl+C")
    _add_detector_args(p_listen)

    p_replay = sub.add_parser("replay", help="Run a recorded key-event JSONL file through the detector")
    p_replay.add_argument("file")
    p_replay.add_argument("--json", action="store_true", help="one JSON record per outcome")
    _add_detector_args(p_replay)
    return ap

def cmd_listen(cfg: ScanDetectorConfig) -> int:
    from app.controller.runtime import ScanRuntime

    def _print(ev) -> None:
        if ev.accepted:
            print(ev.payload, flush=True)

    rt = ScanRuntime(config=cfg, on_scan=_print)
    rt.start()
    try:
        while not rt.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass
    finally:
        rt.stop()
    return 0

def cmd_replay(path: str, cfg: ScanDetectorConfig, as_json: bool) -> int:
    from tools.replay import ReplayError, replay_file

    try:
        results = replay_file(path, cfg)
    except (OSError, ReplayError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    for ev in results:
        if as_json:
            print(json.dumps(ev.to_record(), ensure_ascii=False))
        else:
            status = "ACCEPT" if ev.accepted else "REJECT"
            print(f"{status}  avg={ev.avg_interval_ms:7.2f}ms  len={ev.length:<4} {ev.payload}")
    accepted = sum(1 for ev in results if ev.accepted)
    log.info("replay.done", file=path, accepted=accepted, rejected=len(results) - accepted)
    return 0 if accepted else 1

def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(debug=args.debug, json=False)
    try:
        cfg = build_config(args)
    except (ValueError, re.error) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.cmd == "listen":
        return cmd_listen(cfg)
    return cmd_replay(args.file, cfg, args.json)

if __name__ == "__main__":
    sys.exit(main())
