"""
Bound table for the optimizer configuration and the coercion applied to every edit.

Edits are never rejected: a non-numeric or non-finite input falls back to the
field default, anything else is floored (integer fields) and clamped into range.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

DEFAULTS_VERSION = 1

OBJECTIVES: Tuple[str, ...] = ("min_cvar", "mean_minus_lambda_cvar")

@dataclass(frozen=True)
class FieldSpec:
    kind: str  # "int" | "float" | "enum" | "const"
    fallback: Any
    lo: Optional[float] = None
    hi: Optional[float] = None

FIELD_SPECS: Dict[str, FieldSpec] = {
    # data
    "lookback_days": FieldSpec("int", 504, lo=50),
    "train_ratio": FieldSpec("float", 0.7, lo=0.5, hi=0.9),

    # risk/objective
    "alpha": FieldSpec("float", 0.05, lo=0.01, hi=0.2),
    "objective": FieldSpec("enum", "min_cvar"),
    "lambda": FieldSpec("float", 0.5, lo=0.0),

    # constraints
    "long_only": FieldSpec("const", True),
    "w_max": FieldSpec("float", 0.6, lo=0.05, hi=1.0),
    "turnover_max": FieldSpec("float", 0.5, lo=0.0, hi=2.0),

    # costs
    "transaction_cost_bps": FieldSpec("float", 10.0, lo=0.0),

    # SA
    "iters": FieldSpec("int", 4000, lo=200, hi=20000),
    "step_size": FieldSpec("float", 0.05, lo=0.001, hi=0.5),
    "init_temp": FieldSpec("float", 1.0, lo=0.001),
    "final_temp": FieldSpec("float", 0.001, lo=0.000001),
    "seed": FieldSpec("int", 42),

    # penalties
    "penalty_turnover": FieldSpec("float", 50.0, lo=0.0),
    "penalty_invalid": FieldSpec("const", 1_000_000.0),
}

def default_values() -> Dict[str, Any]:
    """Fresh copy of the canonical default configuration, keyed by wire name."""
    return {name: spec.fallback for name, spec in FIELD_SPECS.items()}

def to_number(raw: Any) -> float:
    """Coerce an edit to a float; NaN when it cannot be read as a number."""
    if raw is None:
        return math.nan
    if isinstance(raw, bool):
        return float(raw)
    if isinstance(raw, str):
        s = raw.strip()
        if not s:
            return 0.0
        raw = s
    try:
        return float(raw)
    except (TypeError, ValueError, OverflowError):
        return math.nan

def clamp(x: float, lo: Optional[float], hi: Optional[float]) -> float:
    if lo is not None:
        x = max(lo, x)
    if hi is not None:
        x = min(hi, x)
    return x

def normalize(field: str, raw: Any) -> Any:
    try:
        spec = FIELD_SPECS[field]
    except KeyError:
        raise KeyError(f"Unknown config field: {field!r}") from None

    if spec.kind == "const":
        return spec.fallback

    if spec.kind == "enum":
        value = raw.strip() if isinstance(raw, str) else raw
        return value if value in OBJECTIVES else spec.fallback

    x = to_number(raw)
    if not math.isfinite(x):
        return spec.fallback

    if spec.kind == "int":
        return int(clamp(math.floor(x), spec.lo, spec.hi))
    return float(clamp(x, spec.lo, spec.hi))
