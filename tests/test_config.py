"""Tests for config normalization, RunConfig and ConfigModel."""
import json
import math

import pytest

from cvar_client.config_model import ConfigModel, reset
from cvar_client.normalize import FIELD_SPECS, default_values, normalize
from cvar_client.schemas import RunConfig

EXPECTED_DEFAULTS = {
    "lookback_days": 504,
    "train_ratio": 0.7,
    "alpha": 0.05,
    "objective": "min_cvar",
    "lambda": 0.5,
    "long_only": True,
    "w_max": 0.6,
    "turnover_max": 0.5,
    "transaction_cost_bps": 10.0,
    "iters": 4000,
    "step_size": 0.05,
    "init_temp": 1.0,
    "final_temp": 0.001,
    "seed": 42,
    "penalty_turnover": 50.0,
    "penalty_invalid": 1_000_000.0,
}

HOSTILE_INPUTS = [-5, -1e9, 0, 1e9, "abc", "", "  ", None, float("inf"), float("-inf"),
                  float("nan"), "Infinity", "-inf", "1e400", 10**400, True, [], {}]


def test_spec_examples():
    assert normalize("lookback_days", -5) == 50
    assert normalize("lookback_days", "abc") == 504
    assert normalize("alpha", 10) == 0.2
    assert normalize("w_max", 0) == 0.05


@pytest.mark.parametrize("field", [n for n, s in FIELD_SPECS.items() if s.kind in ("int", "float")])
def test_numeric_fields_stay_in_bounds(field):
    spec = FIELD_SPECS[field]
    for raw in HOSTILE_INPUTS:
        v = normalize(field, raw)
        assert math.isfinite(v), (field, raw)
        if spec.lo is not None:
            assert v >= spec.lo, (field, raw, v)
        if spec.hi is not None:
            assert v <= spec.hi, (field, raw, v)
        if spec.kind == "int":
            assert isinstance(v, int) and not isinstance(v, bool)


def test_non_finite_falls_back():
    assert normalize("iters", float("inf")) == 4000
    assert normalize("train_ratio", float("nan")) == 0.7
    assert normalize("seed", "nope") == 42
    assert normalize("final_temp", None) == 0.001


def test_numeric_strings_are_parsed_and_clamped():
    assert normalize("alpha", " 0.1 ") == 0.1
    assert normalize("turnover_max", "5") == 2.0
    assert normalize("step_size", "0") == 0.001
    # empty input reads as zero, then clamps
    assert normalize("lookback_days", "") == 50


def test_integer_fields_are_floored():
    assert normalize("lookback_days", 250.9) == 250
    assert normalize("iters", "1234.99") == 1234
    assert normalize("seed", -3.5) == -4
    assert normalize("seed", 7) == 7


def test_objective_enum():
    assert normalize("objective", "mean_minus_lambda_cvar") == "mean_minus_lambda_cvar"
    assert normalize("objective", " min_cvar ") == "min_cvar"
    assert normalize("objective", "max_sharpe") == "min_cvar"
    assert normalize("objective", 3) == "min_cvar"


def test_fixed_constants_ignore_input():
    assert normalize("penalty_invalid", 5) == 1_000_000.0
    assert normalize("long_only", False) is True


def test_unknown_field():
    with pytest.raises(KeyError):
        normalize("leverage", 2)


def test_defaults_table():
    assert default_values() == EXPECTED_DEFAULTS
    d = default_values()
    d["alpha"] = 0.2
    assert default_values()["alpha"] == 0.05


def test_reset_is_idempotent():
    a, b = reset(), reset()
    assert a == b
    assert a.model_dump(by_alias=True) == EXPECTED_DEFAULTS

    cm = ConfigModel()
    cm.update("alpha", 0.15)
    assert cm.reset().model_dump(by_alias=True) == EXPECTED_DEFAULTS
    assert cm.reset() == reset()


def test_run_config_construction_clamps():
    cfg = RunConfig.model_validate({"alpha": 10, "iters": "50", "lambda": -1, "objective": "bogus"})
    assert cfg.alpha == 0.2
    assert cfg.iters == 200
    assert cfg.lambda_ == 0.0
    assert cfg.objective == "min_cvar"

    cfg = RunConfig(lambda_=2.5, w_max=0.01)
    assert cfg.lambda_ == 2.5
    assert cfg.w_max == 0.05


def test_config_json_uses_wire_names():
    doc = json.loads(reset().config_json())
    assert doc == EXPECTED_DEFAULTS
    assert "lambda_" not in doc


def test_config_model_update_returns_normalized_value():
    cm = ConfigModel()
    assert cm.update("w_max", "3") == 1.0
    assert cm.get("w_max") == 1.0
    assert cm.update("lambda_", "0.8") == 0.8
    assert cm.get("lambda") == 0.8


def test_snapshot_is_frozen_copy():
    cm = ConfigModel()
    snap = cm.snapshot()
    cm.update("alpha", 0.1)
    assert snap.alpha == 0.05
    assert cm.snapshot().alpha == 0.1
    with pytest.raises(Exception):
        snap.alpha = 0.2


def test_lambda_editable_regardless_of_objective():
    cm = ConfigModel()
    assert not cm.lambda_active
    cm.update("lambda", 3)
    assert cm.get("lambda") == 3.0
    cm.update("objective", "mean_minus_lambda_cvar")
    assert cm.lambda_active


def test_update_many():
    cm = ConfigModel()
    cfg = cm.update_many({"alpha": "0.1", "iters": 99999, "seed": "7.9"})
    assert (cfg.alpha, cfg.iters, cfg.seed) == (0.1, 20000, 7)
