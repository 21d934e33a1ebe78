import os, json
from typing import Dict, Any, List

from .services.orchestrator import RunResult
from .services.results import MemoPresent, ResultFetcher

def ensure_dir(p: str) -> None:
    os.makedirs(p, exist_ok=True)

def write_json(path: str, obj: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2)

def read_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

def local_path(out_dir: str, rel: str) -> str:
    # artifact paths come from the service; keep them inside out_dir
    base = os.path.abspath(out_dir)
    p = os.path.abspath(os.path.join(base, *rel.split("/")))
    if os.path.commonpath([base, p]) != base:
        raise ValueError(f"artifact path escapes output dir: {rel}")
    return p

def save_result(result: RunResult, out_dir: str) -> List[str]:
    """Write the result view as JSON files; returns the written paths."""
    ensure_dir(out_dir)
    written = []

    p = os.path.join(out_dir, "status.json")
    write_json(p, {"run_id": result.handle.run_id, **result.status.model_dump(by_alias=True, exclude={"run_id"})})
    written.append(p)

    p = os.path.join(out_dir, "run_summary.json")
    write_json(p, result.summary.model_dump(by_alias=True))
    written.append(p)

    if isinstance(result.memo, MemoPresent):
        p = os.path.join(out_dir, "llm_memo.json")
        memo = result.memo.memo
        write_json(p, {"model": memo.model, "memo": memo.model_dump(exclude={"model"})})
        written.append(p)

    return written

async def download_artifacts(result: RunResult, fetcher: ResultFetcher, out_dir: str, plots: bool = True) -> List[str]:
    """Fetch the allow-listed artifacts (and plots) that the run actually produced."""
    present = set(result.status.files)
    wanted = [l.name for l in result.links if l.name in present]
    if plots:
        wanted += [p.path for p in result.plots]

    written = []
    for rel in wanted:
        content = await fetcher.fetch_artifact(result.handle, rel, result.cache_token)
        p = local_path(out_dir, rel)
        ensure_dir(os.path.dirname(p))
        with open(p, "wb") as f:
            f.write(content)
        written.append(p)
    return written

