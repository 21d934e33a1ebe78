"""Shared fixtures: an in-process stand-in for the optimizer service."""
import asyncio
from typing import Any, Dict, List, Optional, Union

import httpx
import pytest
from fastapi import FastAPI, File, Form, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from cvar_client.api import OptimizerApi
from cvar_client.services.dataset import DatasetHandle

BASE_URL = "http://testserver"

DEMO_CSV = b"date,SPY.US,GLD.US,TLT.US\n2020-03-20,0.70,0.10,0.20\n"

DONE_FILES = [
    "figures/equity_curve_full.png",
    "figures/return_hist_test_opt.png",
    "llm_memo.json",
    "objective_history.csv",
    "portfolio.csv",
    "portfolio_returns_full.csv",
    "status.json",
    "summary.json",
    "trades.csv",
    "weights_opt.csv",
]

SUMMARY = {
    "as_of": "2020-03-20",
    "objective": "min_cvar",
    "alpha": 0.05,
    "lambda": None,
    "best_objective_value": 0.0213,
    "turnover": 0.31,
    "transaction_cost_est": 0.00031,
    "train": {"mean": 0.0004, "stdev": 0.011, "cvar": 0.027, "min": -0.05, "max": 0.04},
    "test": {"mean": 0.0002, "stdev": 0.013, "cvar": 0.031, "min": -0.06, "max": 0.05},
    "sanity": {"sum_weights": 1.0, "max_weight": 0.6, "min_weight": 0.1},
}

MEMO = {
    "run_id": "run1",
    "model": "gpt-4o-mini",
    "memo": {
        "headline": "Tail risk cut by a fifth",
        "key_findings": ["CVaR fell from 3.4% to 2.7%", "Gold weight doubled"],
        "risk_story": "Worst days are less severe.",
        "return_story": "Mean return roughly unchanged.",
        "crash_days_commentary": "March 2020 dominates the tail.",
        "limitations": ["Short test window"],
        "next_experiments": ["Try alpha=0.1"],
    },
}


def status(state: str, files: Optional[List[str]] = None, error: Optional[str] = None) -> Dict[str, Any]:
    return {"status": state, "files": files or [], "error": error}


class FakeOptimizerService:
    """
    Scripted optimizer service.

    `scripts[i]` is the status sequence of the i-th created run; each poll pops
    the next status and the last one repeats. Set the *_error attributes to a
    (status_code, body) pair to make an endpoint fail.
    """

    def __init__(self) -> None:
        self.scripts: List[List[Dict[str, Any]]] = [[status("running"), status("done", DONE_FILES)]]
        self.summary: Dict[str, Any] = SUMMARY
        self.memo: Union[Dict[str, Any], str] = MEMO
        self.memo_raw: Optional[str] = None
        self.create_error: Optional[tuple] = None
        self.status_error: Optional[tuple] = None
        self.summary_error: Optional[tuple] = None
        self.memo_error: Optional[tuple] = None
        self.artifacts: Dict[str, bytes] = {
            "summary.json": b"{}",
            "weights_opt.csv": b"asset,weight\nSPY.US,0.6\n",
            "trades.csv": b"asset,w_prev,w_new,delta\n",
            "objective_history.csv": b"iter,obj_best\n0,0.03\n",
            "portfolio_returns_full.csv": b"date,split,ret_prev,ret_opt\n",
            "figures/equity_curve_full.png": b"\x89PNG-equity",
            "figures/return_hist_test_opt.png": b"\x89PNG-hist",
        }
        self.calls: List[str] = []
        self.submissions: List[Dict[str, Any]] = []
        self.artifact_queries: List[Dict[str, str]] = []
        self._remaining: Dict[str, List[Dict[str, Any]]] = {}
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="CVaR SA Optimizer API (test double)")

        @app.post("/api/runs")
        async def create_run(
            portfolio: UploadFile = File(...),
            config_json: str = Form(...),
            do_memo: str = Form("false"),
            memo_model: Optional[str] = Form(None),
        ):
            self.calls.append("POST /api/runs")
            if self.create_error:
                return PlainTextResponse(self.create_error[1], status_code=self.create_error[0])
            run_id = f"run{len(self.submissions) + 1}"
            self.submissions.append({
                "filename": portfolio.filename,
                "content": await portfolio.read(),
                "config_json": config_json,
                "do_memo": do_memo,
                "memo_model": memo_model,
            })
            script = self.scripts[min(len(self.submissions), len(self.scripts)) - 1]
            self._remaining[run_id] = list(script)
            return {"run_id": run_id, "status": "queued", "message": "Run started"}

        @app.get("/api/runs/{run_id}")
        async def get_run(run_id: str):
            self.calls.append(f"GET /api/runs/{run_id}")
            if self.status_error:
                return PlainTextResponse(self.status_error[1], status_code=self.status_error[0])
            remaining = self._remaining.get(run_id)
            if remaining is None:
                return JSONResponse({"detail": "run_id not found"}, status_code=404)
            st = remaining.pop(0) if len(remaining) > 1 else remaining[0]
            return {"run_id": run_id, **st}

        @app.get("/api/runs/{run_id}/summary")
        async def get_summary(run_id: str):
            self.calls.append(f"GET /api/runs/{run_id}/summary")
            if self.summary_error:
                return PlainTextResponse(self.summary_error[1], status_code=self.summary_error[0])
            return self.summary

        @app.get("/api/runs/{run_id}/memo")
        async def get_memo(run_id: str):
            self.calls.append(f"GET /api/runs/{run_id}/memo")
            if self.memo_error:
                return PlainTextResponse(self.memo_error[1], status_code=self.memo_error[0])
            if self.memo_raw is not None:
                return PlainTextResponse(self.memo_raw)
            return JSONResponse(self.memo)

        @app.get("/runs/{run_id}/{path:path}")
        async def get_artifact(run_id: str, path: str, t: Optional[str] = None):
            self.calls.append(f"GET /runs/{run_id}/{path}")
            self.artifact_queries.append({"path": path, "t": t})
            if path not in self.artifacts:
                return PlainTextResponse("Not Found", status_code=404)
            return Response(content=self.artifacts[path])

        return app


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


@pytest.fixture
def service():
    return FakeOptimizerService()


@pytest.fixture
async def api(service):
    client = OptimizerApi(base_url=BASE_URL, transport=httpx.ASGITransport(app=service.app))
    yield client
    await client.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def dataset():
    return DatasetHandle(filename="portfolio.csv", content=DEMO_CSV)
