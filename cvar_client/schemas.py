import json
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Literal, Optional, Dict, Any, List

from .normalize import FIELD_SPECS, normalize

class RunConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # data
    lookback_days: int = 504
    train_ratio: float = 0.70

    # risk/objective
    alpha: float = 0.05
    objective: Literal["min_cvar", "mean_minus_lambda_cvar"] = "min_cvar"
    # only used by the service when objective == "mean_minus_lambda_cvar"
    lambda_: float = Field(default=0.5, alias="lambda")

    # constraints
    long_only: bool = True
    w_max: float = 0.60
    turnover_max: float = 0.50

    # costs
    transaction_cost_bps: float = 10.0

    # SA
    seed: int = 42
    iters: int = 4000
    step_size: float = 0.05
    init_temp: float = 1.0
    final_temp: float = 0.001

    # penalties
    penalty_turnover: float = 50.0
    penalty_invalid: float = 1_000_000.0

    @model_validator(mode="before")
    @classmethod
    def _normalize_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = {}
        for key, raw in data.items():
            name = "lambda" if key == "lambda_" else key
            out[name] = normalize(name, raw) if name in FIELD_SPECS else raw
        return out

    @property
    def lambda_active(self) -> bool:
        return self.objective == "mean_minus_lambda_cvar"

    def config_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True))

class RunHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    run_id: str

class RunCreateResponse(BaseModel):
    run_id: str
    status: Optional[str] = None
    message: Optional[str] = None

class RunStatus(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    state: Literal["pending", "running", "done", "error"] = Field(alias="status")
    files: List[str] = []
    error: Optional[str] = None
    run_id: Optional[str] = None

    @field_validator("state", mode="before")
    @classmethod
    def _queued_is_pending(cls, v: Any) -> Any:
        return "pending" if v == "queued" else v

    @field_validator("files", mode="before")
    @classmethod
    def _no_files(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def is_terminal(self) -> bool:
        return self.state in ("done", "error")

class SplitMetrics(BaseModel):
    model_config = ConfigDict(extra="allow")

    cvar: Optional[float] = None
    mean: Optional[float] = None
    stdev: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None

class Summary(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    objective: Optional[Any] = None
    alpha: Optional[float] = None
    turnover: Optional[float] = None
    train: SplitMetrics = SplitMetrics()
    test: SplitMetrics = SplitMetrics()

    as_of: Optional[str] = None
    lambda_: Optional[float] = Field(default=None, alias="lambda")
    best_objective_value: Optional[float] = None
    transaction_cost_est: Optional[float] = None
    sanity: Dict[str, Any] = {}

class Memo(BaseModel):
    model_config = ConfigDict(extra="allow")

    headline: str = ""
    key_findings: List[str] = []
    risk_story: str = ""
    return_story: str = ""
    crash_days_commentary: str = ""
    limitations: List[str] = []
    next_experiments: List[str] = []
    model: Optional[str] = None

class MemoResponse(BaseModel):
    run_id: Optional[str] = None
    model: Optional[str] = None
    memo: Dict[str, Any]

class PlotArtifact(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    path: str

class ArtifactLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    url: str
