# tests/test_replay.py
# What this covers:
#   - JSONL loading (blank lines, focus records, malformed input)
#   - Virtual-clock replay: terminator, idle flush at end of file, slow typing
#   - scan-guard replay exit codes and output

import json

import pytest

from app.detector.config import ScanDetectorConfig
from core.hooks.events import FocusEvent, KeyAction, KeyEvent
from tools.replay import ReplayError, load_records, replay, replay_file
from tools import scan_cli

ENTER = 13


def _burst(text, start, gap, end_code=ENTER, target=None):
    events = []
    t = start
    for ch in text:
        events.append(KeyEvent(key=ch, key_code=ord(ch.upper()), t_mono=t, target=target))
        events.append(KeyEvent(key=ch, key_code=ord(ch.upper()), action=KeyAction.UP, t_mono=t + 0.002, target=target))
        t += gap
    if end_code is not None:
        events.append(KeyEvent(key="enter", key_code=end_code, t_mono=t, target=target))
    return events


def _write(path, events, extra_lines=()):
    with open(path, "w", encoding="utf-8") as fh:
        for ev in events:
            fh.write(json.dumps(ev.to_record()) + "\n")
        for line in extra_lines:
            fh.write(line + "\n")
    return path


def test_replay_mixed_session():
    events = (
        _burst("4006381333931", start=1.0, gap=0.006)      # scanner
        + _burst("hello", start=3.0, gap=0.180)            # human, Enter typed too
        + _burst("ABC", start=6.0, gap=0.004, end_code=None)  # scanner without terminator
    )
    results = replay(events, ScanDetectorConfig(evaluation_delay_ms=1000))

    assert [(r.payload, r.accepted) for r in results] == [
        ("4006381333931", True),
        ("hello", False),
        ("ABC", True),
    ]
    assert results[1].avg_interval_ms == pytest.approx(180.0)
    # the idle flush happens evaluation_delay after the last key
    assert results[2].t_mono == pytest.approx(6.008 + 1.0)


def test_replay_uses_focus_records_as_target():
    events = [FocusEvent(app_name="notes.exe", t_mono=0.5)] + _burst("12", start=1.0, gap=0.005)
    events += [FocusEvent(app_name="pos.exe", t_mono=2.0)] + _burst("34", start=2.5, gap=0.005)
    results = replay(events, ScanDetectorConfig(ignore_target="notes.exe"))

    assert [r.payload for r in results] == ["34"]
    assert results[0].target == "pos.exe"


def test_replay_rejects_time_going_backwards():
    events = [KeyEvent(key="a", key_code=65, t_mono=2.0), KeyEvent(key="b", key_code=66, t_mono=1.0)]
    with pytest.raises(ReplayError):
        replay(events)


def test_load_records_skips_blank_and_unknown_lines(tmp_path):
    path = _write(tmp_path / "keys.jsonl", _burst("9", start=1.0, gap=0.01), extra_lines=["", '{"etype": "SCAN", "t_mono": 1.5}'])
    events = load_records(path)
    assert [type(e).__name__ for e in events] == ["KeyEvent", "KeyEvent", "KeyEvent"]


def test_load_records_reports_line_number(tmp_path):
    path = tmp_path / "bad.jsonl"
    path.write_text('{"key": "a", "t_mono": 1.0}\nnot json\n', encoding="utf-8")
    with pytest.raises(ReplayError, match=":2:"):
        load_records(path)


def test_replay_file_with_start_codes(tmp_path):
    events = [KeyEvent(key="\t", key_code=9, t_mono=1.0)] + _burst("AB", start=1.005, gap=0.005, end_code=None)
    path = _write(tmp_path / "tab.jsonl", events)
    results = replay_file(path, ScanDetectorConfig(start_codes=[9]))
    assert [(r.payload, r.accepted) for r in results] == [("AB", True)]


def test_cli_replay_exit_codes(tmp_path, capsys):
    good = _write(tmp_path / "good.jsonl", _burst("123", start=1.0, gap=0.01))
    assert scan_cli.main(["replay", str(good)]) == 0
    out = capsys.readouterr().out
    assert "ACCEPT" in out and "123" in out

    slow = _write(tmp_path / "slow.jsonl", _burst("123", start=1.0, gap=0.3))
    assert scan_cli.main(["replay", str(slow), "--eval-delay-ms", "1000"]) == 1
    assert "REJECT" in capsys.readouterr().out

    assert scan_cli.main(["replay", str(tmp_path / "missing.jsonl")]) == 2


def test_cli_replay_pattern_and_json(tmp_path, capsys):
    path = _write(tmp_path / "codes.jsonl", _burst("AB12", start=1.0, gap=0.005) + _burst("9876", start=2.0, gap=0.005))
    assert scan_cli.main(["replay", str(path), "--json", "--pattern", r"\d+"]) == 0
    lines = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
    assert [(r["payload"], r["accepted"]) for r in lines] == [("AB12", False), ("9876", True)]


def test_cli_reports_bad_environment(tmp_path, monkeypatch, capsys):
    path = _write(tmp_path / "k.jsonl", _burst("1", start=1.0, gap=0.01))
    monkeypatch.setenv("SCAN_GUARD_MIN_LENGTH", "many")
    assert scan_cli.main(["replay", str(path)]) == 2
    assert "SCAN_GUARD_MIN_LENGTH" in capsys.readouterr().err


def test_replay_target_comes_from_window_not_later_ignored_keys():
    events = [FocusEvent(app_name="pos.exe", t_mono=0.5)] + _burst("123", start=1.0, gap=0.005, end_code=None)
    events += [FocusEvent(app_name="notes.exe", t_mono=1.02), KeyEvent(key="x", key_code=88, t_mono=1.03)]
    results = replay(events, ScanDetectorConfig(ignore_target="notes.exe"))

    assert [(r.payload, r.target, r.length) for r in results] == [("123", "pos.exe", 3)]
