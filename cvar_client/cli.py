"""
Command-line front end for the CVaR optimizer service.

Usage:
    cvar-client defaults                                   # print the default config as JSON
    cvar-client run portfolio.csv                          # submit, poll, print results
    cvar-client run portfolio.csv --set alpha=0.1 --set iters=8000
    cvar-client run portfolio.csv --config cfg.json --memo --memo-model gpt-4o-mini
    cvar-client run portfolio.csv --out results/           # also save JSON + artifacts
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .api import OptimizerApi
from .config_model import ConfigModel, reset
from .errors import DatasetError
from .services.dataset import DatasetHandle, preview_dataset
from .services.orchestrator import Completed, Failed, Polling, RunOrchestrator, RunState
from .services.results import MemoPresent, MemoUnavailable
from .settings import settings
from .storage import download_artifacts, read_json, save_result

logger = logging.getLogger(__name__)


def parse_edits(items: Optional[List[str]]) -> Dict[str, Any]:
    edits = {}
    for item in items or []:
        if "=" not in item:
            raise argparse.ArgumentTypeError(f"expected field=value, got {item!r}")
        key, value = item.split("=", 1)
        edits[key.strip()] = value
    return edits


def print_status(state: RunState) -> None:
    if isinstance(state, Polling) and state.status is not None:
        print(f"  [{state.handle.run_id}] {state.status.state}")


def print_result(state: RunState) -> None:
    if isinstance(state, Failed):
        print(f"Run failed: {state.message}")
        return
    if not isinstance(state, Completed):
        return

    r = state.result
    s = r.summary
    print(f"Run {r.handle.run_id} done.")
    print(f"  objective={s.objective}  alpha={s.alpha}  turnover={s.turnover}")
    for name, m in (("train", s.train), ("test", s.test)):
        print(f"  {name:<5} cvar={m.cvar}  mean={m.mean}")

    if r.plots:
        print("Plots:")
        for p in r.plots:
            print(f"  {p.title}: {r.plot_url(p)}")
    if r.links:
        print("Downloads:")
        for link in r.links:
            print(f"  {link.url}")

    if isinstance(r.memo, MemoPresent):
        m = r.memo.memo
        print(f"Memo: {m.headline}")
        for finding in m.key_findings:
            print(f"  - {finding}")
        for label, text in (("Risk", m.risk_story), ("Return", m.return_story), ("Crash days", m.crash_days_commentary)):
            if text:
                print(f"  {label}: {text}")
        if m.model:
            print(f"  Generated by: {m.model}")
    elif isinstance(r.memo, MemoUnavailable):
        print(f"Memo unavailable: {r.memo.reason}")


async def run_command(args: argparse.Namespace) -> int:
    try:
        dataset = DatasetHandle.from_path(args.dataset)
    except DatasetError as e:
        print(str(e), file=sys.stderr)
        return 1

    try:
        preview = preview_dataset(dataset)
        print(f"Portfolio as of {preview.as_of or '?'}: " + ", ".join(
            f"{a}={w:.2%}" for a, w in zip(preview.assets, preview.weights)))
    except DatasetError as e:
        # the service has the final say on the format
        logger.warning("dataset preview failed: %s", e)

    config = ConfigModel()
    if args.config:
        try:
            loaded = read_json(args.config)
            if not isinstance(loaded, dict):
                raise ValueError("expected a JSON object")
            config.update_many(loaded)
        except (OSError, ValueError, KeyError) as e:
            print(f"Cannot read config {args.config}: {e}", file=sys.stderr)
            return 1
    edits = parse_edits(args.set)
    config.update_many(edits)
    if "lambda" in edits and not config.lambda_active:
        logger.info("lambda is only used with objective=mean_minus_lambda_cvar")

    async with OptimizerApi(base_url=args.api_base) as api:
        orch = RunOrchestrator(api)
        orch.subscribe(print_status)
        print("Run started. Polling status...")
        state = await orch.run(dataset, config, do_memo=args.memo, memo_model=args.memo_model)
        print_result(state)

        if isinstance(state, Completed) and args.out:
            written = save_result(state.result, args.out)
            written += await download_artifacts(state.result, orch.fetcher, args.out)
            print(f"Saved {len(written)} files to {args.out}")

    return 0 if isinstance(state, Completed) else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command-line entry point."""
    parser = argparse.ArgumentParser(description="CVaR optimizer service client")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL.lower(),
                        choices=["debug", "info", "warning", "error"])
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("defaults", help="Print the default optimizer config")

    p_run = sub.add_parser("run", help="Submit a portfolio and wait for results")
    p_run.add_argument("dataset", help="portfolio.csv: date column + one weight column per asset")
    p_run.add_argument("--set", action="append", metavar="FIELD=VALUE", help="Config edit (repeatable)")
    p_run.add_argument("--config", help="JSON file of config edits")
    p_run.add_argument("--memo", action="store_true", help="Ask the service for an LLM memo")
    p_run.add_argument("--memo-model", default=None, help="Override the memo model")
    p_run.add_argument("--out", default=None, help="Directory to save results and artifacts")
    p_run.add_argument("--api-base", default=None, help=f"Service URL (default: {settings.API_BASE})")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "defaults":
        print(json.dumps(reset().model_dump(by_alias=True), indent=2))
        return 0

    try:
        return asyncio.run(run_command(args))
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except KeyError as e:
        parser.error(str(e))


if __name__ == "__main__":
    sys.exit(main())
