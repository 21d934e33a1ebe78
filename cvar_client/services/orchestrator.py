"""
Run lifecycle: submit, poll to a terminal status, fetch results.

The lifecycle is a single tagged state value:

    Idle -> Submitting -> Polling -> FetchingResults -> Completed
    Submitting | Polling | FetchingResults -> Failed

Completed and Failed are terminal for a run. Starting a new run discards the
previous run's state entirely. Every hard error collapses into Failed with one
human-readable message; an undecodable memo is the only soft failure.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Union

from ..api import OptimizerApi
from ..config_model import ConfigModel
from ..errors import OptimizerClientError, RunCancelledError, RunInProgressError
from ..schemas import ArtifactLink, PlotArtifact, RunConfig, RunHandle, RunStatus, Summary
from .dataset import DatasetHandle
from .poller import CancelToken, StatusPoller
from .results import MemoNotRequested, MemoOutcome, ResultFetcher
from .submitter import RunSubmitter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Everything the presentation layer shows for a completed run."""
    handle: RunHandle
    status: RunStatus
    summary: Summary
    memo: MemoOutcome
    artifact_base_url: str
    cache_token: str
    plots: List[PlotArtifact] = field(default_factory=list)
    links: List[ArtifactLink] = field(default_factory=list)

    def plot_url(self, plot: PlotArtifact) -> str:
        # cache-busted so a re-run with the same paths never shows stale images
        return f"{self.artifact_base_url}/{plot.path}?t={self.cache_token}"


@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Submitting:
    config: RunConfig
    do_memo: bool
    name = "submitting"


@dataclass(frozen=True)
class Polling:
    handle: RunHandle
    status: Optional[RunStatus] = None
    name = "polling"


@dataclass(frozen=True)
class FetchingResults:
    handle: RunHandle
    status: RunStatus
    name = "fetching_results"


@dataclass(frozen=True)
class Completed:
    result: RunResult
    name = "completed"


@dataclass(frozen=True)
class Failed:
    message: str
    error: Optional[BaseException] = None
    handle: Optional[RunHandle] = None
    status: Optional[RunStatus] = None
    name = "failed"


RunState = Union[Idle, Submitting, Polling, FetchingResults, Completed, Failed]
StateListener = Callable[[RunState], None]

_ACTIVE = (Submitting, Polling, FetchingResults)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class RunOrchestrator:
    def __init__(
        self,
        api: OptimizerApi,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        poll_interval: Optional[float] = None,
    ):
        self.api = api
        self.submitter = RunSubmitter(api)
        self.fetcher = ResultFetcher(api)
        self._clock = clock
        self._sleep = sleep
        self._poll_interval = poll_interval

        self._state: RunState = Idle()
        self._listeners: List[StateListener] = []
        self._seq = 0
        self._token: Optional[CancelToken] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def busy(self) -> bool:
        """True while a run is active or scheduled but not yet started."""
        if isinstance(self._state, _ACTIVE):
            return True
        return self._pending_task() is not None

    def _pending_task(self) -> Optional[asyncio.Task]:
        task = self._task
        if task is None or task.done() or task is _current_task():
            return None
        return task

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: RunState, seq: int) -> RunState:
        # transitions from a superseded run are dropped
        if seq != self._seq:
            return state
        self._state = state
        if isinstance(state, Polling) and state.status is not None:
            logger.debug("run %s: status %s", state.handle.run_id, state.status.state)
        else:
            logger.info("run state -> %s", state.name)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("state listener failed on %s", state.name)
        return state

    def start(
        self,
        dataset: Optional[DatasetHandle],
        config: Union[RunConfig, ConfigModel],
        do_memo: bool = False,
        memo_model: Optional[str] = None,
        supersede: bool = False,
    ) -> "asyncio.Task[RunState]":
        """Schedule a run on the running loop and return its task."""
        if self.busy:
            if not supersede:
                raise RunInProgressError("A run is already in progress.")
            self._abandon()
        self._task = asyncio.create_task(self.run(dataset, config, do_memo, memo_model))
        return self._task

    async def run(
        self,
        dataset: Optional[DatasetHandle],
        config: Union[RunConfig, ConfigModel],
        do_memo: bool = False,
        memo_model: Optional[str] = None,
        supersede: bool = False,
    ) -> RunState:
        """Execute one full run lifecycle and return its terminal state."""
        if self.busy:
            if not supersede:
                raise RunInProgressError("A run is already in progress.")
            await self.cancel()

        if isinstance(config, ConfigModel):
            config = config.snapshot()

        self._seq += 1
        seq = self._seq
        token = CancelToken()
        self._token = token

        handle: Optional[RunHandle] = None
        status: Optional[RunStatus] = None

        def on_status(st: RunStatus) -> None:
            nonlocal status
            status = st
            self._set(Polling(handle, st), seq)

        # drop whatever the previous run left behind
        self._set(Idle(), seq)
        self._set(Submitting(config, do_memo), seq)
        try:
            handle = await self.submitter.submit(dataset, config, do_memo, memo_model)
            token.raise_if_cancelled()
            self._set(Polling(handle), seq)

            poller = StatusPoller(
                self.api, handle,
                interval=self._poll_interval, clock=self._clock, sleep=self._sleep,
            )
            status = await poller.poll(do_memo, on_status=on_status, cancel=token)
            self._set(FetchingResults(handle, status), seq)

            summary = await self.fetcher.fetch_summary(handle)
            token.raise_if_cancelled()
            memo = await self.fetcher.fetch_memo(handle) if do_memo else MemoNotRequested()
            token.raise_if_cancelled()

            result = RunResult(
                handle=handle,
                status=status,
                summary=summary,
                memo=memo,
                artifact_base_url=self.api.run_url(handle.run_id),
                cache_token=str(int(time.time() * 1000)),
                plots=self.fetcher.derive_plots(status),
                links=self.fetcher.artifact_links(handle, status),
            )
            logger.info("run %s completed", handle.run_id)
            return self._set(Completed(result), seq)

        except asyncio.CancelledError:
            err = RunCancelledError()
            self._set(Failed(str(err), err, handle, status), seq)
            raise
        except OptimizerClientError as e:
            logger.warning("run %s failed: %s", handle.run_id if handle else "-", e)
            return self._set(Failed(str(e), e, handle, status), seq)
        except Exception as e:
            logger.exception("run %s failed unexpectedly", handle.run_id if handle else "-")
            return self._set(Failed(str(e) or type(e).__name__, e, handle, status), seq)
        finally:
            if self._token is token:
                self._token = None

    def _abandon(self) -> None:
        """Cancel the in-flight run and move it to Failed without waiting for it to unwind."""
        if self._token is not None:
            self._token.cancel()
        task = self._pending_task()
        if task is not None:
            # a task that has not started yet never runs once cancelled
            task.cancel()
        st = self._state
        if isinstance(st, _ACTIVE):
            err = RunCancelledError()
            self._set(Failed(str(err), err, getattr(st, "handle", None), getattr(st, "status", None)), self._seq)
        elif task is not None:
            err = RunCancelledError()
            self._set(Failed(str(err), err), self._seq)
        self._seq += 1

    async def cancel(self) -> bool:
        """Abort the in-flight run. Returns False when nothing was running."""
        if not self.busy:
            return False
        task = self._pending_task()
        self._abandon()
        if task is not None:
            await asyncio.wait([task])
        return True
