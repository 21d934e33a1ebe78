import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from ..api import OptimizerApi
from ..errors import PollTimeoutError, RunCancelledError, RunError
from ..schemas import RunHandle, RunStatus
from ..settings import settings

logger = logging.getLogger(__name__)

StatusListener = Callable[[RunStatus], None]


class CancelToken:
    """Cooperative cancellation shared by one run's poll loop and network calls."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelledError()

    async def wait(self, seconds: float) -> None:
        """Sleep for `seconds`, waking early with RunCancelledError on cancel."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise RunCancelledError()


class StatusPoller:
    """
    Drives one run to a terminal status.

    Queries the service every `interval` seconds, publishing each status in
    request order. Stops on `done` (returned), `error` (RunError) or once the
    deadline measured from loop start has passed (PollTimeoutError). A failed
    status query ends the loop; it is not retried.
    """

    def __init__(
        self,
        api: OptimizerApi,
        handle: RunHandle,
        interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.api = api
        self.handle = handle
        self.interval = settings.POLL_INTERVAL_S if interval is None else interval
        self._clock = clock
        self._sleep = sleep
        self._used = False

    @staticmethod
    def deadline_for(do_memo: bool) -> float:
        return settings.POLL_TIMEOUT_MEMO_S if do_memo else settings.POLL_TIMEOUT_S

    async def poll(
        self,
        do_memo: bool = False,
        on_status: Optional[StatusListener] = None,
        cancel: Optional[CancelToken] = None,
    ) -> RunStatus:
        if self._used:
            raise RuntimeError(f"poller for run {self.handle.run_id} already ran")
        self._used = True

        deadline = self.deadline_for(do_memo)
        start = self._clock()
        run_id = self.handle.run_id

        while True:
            if cancel is not None:
                cancel.raise_if_cancelled()

            st = RunStatus.model_validate(await self.api.get_run(run_id))
            logger.debug("run %s: %s", run_id, st.state)
            if on_status is not None:
                on_status(st)

            if st.state == "done":
                return st

            if st.state == "error":
                raise RunError(st.error or "unknown error")

            if self._clock() - start > deadline:
                raise PollTimeoutError(deadline)

            await self._wait(cancel)

    async def _wait(self, cancel: Optional[CancelToken]) -> None:
        if self._sleep is not None:
            await self._sleep(self.interval)
            if cancel is not None:
                cancel.raise_if_cancelled()
        elif cancel is not None:
            await cancel.wait(self.interval)
        else:
            await asyncio.sleep(self.interval)
