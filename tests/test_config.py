# tests/test_config.py
# What this covers:
#   - Defaults match the documented behaviour
#   - SCAN_GUARD_* environment parsing and precedence of explicit overrides

import pytest

from app.detector.config import ScanDetectorConfig, codes

def test_defaults():
    cfg = ScanDetectorConfig()
    assert cfg.evaluation_delay_ms == 100
    assert cfg.max_avg_interval_ms == 50
    assert cfg.start_codes == frozenset()
    assert cfg.end_codes == frozenset({13})
    assert cfg.min_length == 1
    assert cfg.ignore_target is None
    assert cfg.stop_propagation is False and cfg.prevent_default is False
    assert cfg.validator is None
    assert cfg.evaluation_delay_s == pytest.approx(0.1)

def test_code_sequences_are_normalized():
    cfg = ScanDetectorConfig(start_codes=[9, 9], end_codes=(13, 10))
    assert cfg.start_codes == frozenset({9})
    assert cfg.end_codes == frozenset({10, 13})

def test_from_env_reads_prefixed_variables():
    env = {
        "SCAN_GUARD_EVAL_DELAY_MS": "250",
        "SCAN_GUARD_MAX_AVG_INTERVAL_MS": "30.5",
        "SCAN_GUARD_START_CODES": "9",
        "SCAN_GUARD_END_CODES": "13, 10",
        "SCAN_GUARD_MIN_LENGTH": "8",
        "SCAN_GUARD_IGNORE_TARGET": " notes.exe ",
        "SCAN_GUARD_STOP_PROPAGATION": "yes",
        "SCAN_GUARD_PREVENT_DEFAULT": "0",
        "UNRELATED": "1",
    }
    cfg = ScanDetectorConfig.from_env(environ=env)
    assert cfg.evaluation_delay_ms == 250.0
    assert cfg.max_avg_interval_ms == 30.5
    assert cfg.start_codes == frozenset({9})
    assert cfg.end_codes == frozenset({10, 13})
    assert cfg.min_length == 8
    assert cfg.ignore_target == "notes.exe"
    assert cfg.stop_propagation is True
    assert cfg.prevent_default is False

def test_overrides_win_and_none_means_unset():
    env = {"SCAN_GUARD_MIN_LENGTH": "8", "SCAN_GUARD_EVAL_DELAY_MS": "250"}
    cfg = ScanDetectorConfig.from_env(environ=env, min_length=3, evaluation_delay_ms=None, end_codes=codes(None))
    assert cfg.min_length == 3
    assert cfg.evaluation_delay_ms == 250.0
    assert cfg.end_codes == frozenset({13})

def test_blank_variables_are_ignored():
    cfg = ScanDetectorConfig.from_env(environ={"SCAN_GUARD_MIN_LENGTH": "  "})
    assert cfg.min_length == 1

def test_bad_values_name_the_variable():
    with pytest.raises(ValueError, match="SCAN_GUARD_MIN_LENGTH"):
        ScanDetectorConfig.from_env(environ={"SCAN_GUARD_MIN_LENGTH": "eight"})
    with pytest.raises(ValueError, match="SCAN_GUARD_STOP_PROPAGATION"):
        ScanDetectorConfig.from_env(environ={"SCAN_GUARD_STOP_PROPAGATION": "maybe"})
