import logging
from typing import Optional

from ..api import OptimizerApi
from ..errors import PreconditionError, SubmissionError
from ..schemas import RunConfig, RunCreateResponse, RunHandle
from .dataset import DatasetHandle

logger = logging.getLogger(__name__)

class RunSubmitter:
    def __init__(self, api: OptimizerApi):
        self.api = api

    async def submit(
        self,
        dataset: Optional[DatasetHandle],
        config: RunConfig,
        do_memo: bool = False,
        memo_model: Optional[str] = None,
    ) -> RunHandle:
        if dataset is None:
            raise PreconditionError("Please upload portfolio.csv first.")

        model = (memo_model or "").strip() or None
        data = await self.api.create_run(
            dataset.filename,
            dataset.content,
            config.config_json(),
            do_memo,
            memo_model=model,
        )

        try:
            created = RunCreateResponse.model_validate(data)
        except ValueError as e:
            raise SubmissionError(200, str(data), f"POST /api/runs returned no run_id: {data}") from e

        logger.info("submitted %s (memo=%s, model=%s) -> run %s", dataset.filename, do_memo, model, created.run_id)
        return RunHandle(run_id=created.run_id)
