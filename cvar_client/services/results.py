import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError

from ..api import OptimizerApi
from ..errors import FetchError, MemoDecodeError
from ..schemas import ArtifactLink, Memo, MemoResponse, PlotArtifact, RunHandle, RunStatus, Summary
from ..settings import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MemoNotRequested:
    pass


@dataclass(frozen=True)
class MemoUnavailable:
    reason: str


@dataclass(frozen=True)
class MemoPresent:
    memo: Memo


MemoOutcome = Union[MemoNotRequested, MemoUnavailable, MemoPresent]


def _strip_code_fences(text: str) -> str:
    # remove ```json ... ``` or ``` ... ```
    text = text.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.IGNORECASE)
    text = re.sub(r"\s*```$", "", text)
    return text.strip()


def _loads(text: str) -> Any:
    try:
        return json.loads(_strip_code_fences(text))
    except ValueError as e:
        raise MemoDecodeError(f"memo is not valid JSON: {e}") from e


def decode_memo(payload: Any) -> Memo:
    """
    Turn a memo response into a Memo.

    The payload may be the structured response object or a JSON-encoded string
    of it (and the inner `memo` may itself be encoded). Raises MemoDecodeError.
    """
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8", errors="replace")
    if isinstance(payload, str):
        payload = _loads(payload)
    # a JSON-encoded string of the response object
    if isinstance(payload, str):
        payload = _loads(payload)
    if not isinstance(payload, dict):
        raise MemoDecodeError(f"memo payload is a {type(payload).__name__}, not an object")

    body = payload.get("memo")
    if isinstance(body, str):
        payload = {**payload, "memo": _loads(body)}

    try:
        resp = MemoResponse.model_validate(payload)
        return Memo.model_validate({**resp.memo, "model": resp.model or resp.memo.get("model")})
    except ValidationError as e:
        raise MemoDecodeError(f"memo has an unexpected shape: {e}") from e


def plot_title(path: str, figures_dir: Optional[str] = None) -> str:
    prefix = (figures_dir or settings.FIGURES_DIR) + "/"
    name = path[len(prefix):] if path.startswith(prefix) else path
    name = name.rsplit(".", 1)[0] if "." in name else name
    return " ".join(w[:1].upper() + w[1:] for w in name.split("_"))


def derive_plots(
    status: RunStatus,
    figures_dir: Optional[str] = None,
    extensions: Optional[Sequence[str]] = None,
) -> List[PlotArtifact]:
    prefix = (figures_dir or settings.FIGURES_DIR) + "/"
    exts = tuple(extensions or settings.FIGURE_EXTENSIONS)
    return [
        PlotArtifact(title=plot_title(f, figures_dir), path=f)
        for f in status.files
        if f.startswith(prefix) and f.endswith(exts)
    ]


def artifact_links(
    run_base_url: str,
    status: RunStatus,
    allow_list: Optional[Sequence[str]] = None,
) -> List[ArtifactLink]:
    """Download links for the well-known outputs; nothing outside the allow-list is linked."""
    if not status.files:
        return []
    names = settings.ARTIFACT_ALLOW_LIST if allow_list is None else allow_list
    return [ArtifactLink(name=n, url=f"{run_base_url}/{n}") for n in names]


class ResultFetcher:
    def __init__(self, api: OptimizerApi):
        self.api = api

    async def fetch_summary(self, handle: RunHandle) -> Summary:
        data = await self.api.get_summary(handle.run_id)
        try:
            return Summary.model_validate(data)
        except ValidationError as e:
            raise FetchError(200, json.dumps(data, default=str), f"GET /summary returned an unexpected shape: {e}") from e

    async def fetch_memo(self, handle: RunHandle) -> MemoOutcome:
        text = await self.api.get_memo(handle.run_id)
        try:
            memo = decode_memo(text)
        except MemoDecodeError as e:
            logger.warning("run %s: memo unavailable: %s", handle.run_id, e)
            return MemoUnavailable(reason=str(e))
        return MemoPresent(memo=memo)

    def derive_plots(self, status: RunStatus) -> List[PlotArtifact]:
        return derive_plots(status)

    def artifact_links(self, handle: RunHandle, status: RunStatus) -> List[ArtifactLink]:
        return artifact_links(self.api.run_url(handle.run_id), status)

    async def fetch_artifact(self, handle: RunHandle, path: str, cache_token: Optional[str] = None) -> bytes:
        return await self.api.get_artifact(handle.run_id, path, cache_token)
