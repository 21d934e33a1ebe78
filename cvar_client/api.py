"""
Async HTTP transport for the optimizer service.

Every method maps to one endpoint of the service and issues exactly one request.
Non-success responses raise the error type of the calling stage with the status
code and the body text kept verbatim; connection failures raise TransportError.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from .errors import FetchError, StatusQueryError, SubmissionError, TransportError
from .settings import settings

logger = logging.getLogger(__name__)


class OptimizerApi:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.API_BASE).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else settings.HTTP_TIMEOUT_S,
            transport=transport,
        )

    async def __aenter__(self) -> "OptimizerApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    def run_url(self, run_id: str) -> str:
        """Base URL of a run's static artifacts."""
        return f"{self.base_url}/runs/{run_id}"

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %s", method, path, resp.status_code)
        return resp

    async def create_run(
        self,
        filename: str,
        content: bytes,
        config_json: str,
        do_memo: bool,
        memo_model: Optional[str] = None,
    ) -> Dict[str, Any]:
        data = {"config_json": config_json, "do_memo": "true" if do_memo else "false"}
        if memo_model:
            data["memo_model"] = memo_model
        files = {"portfolio": (filename, content, "text/csv")}

        resp = await self._send("POST", "/api/runs", data=data, files=files)
        if not resp.is_success:
            raise SubmissionError(
                resp.status_code, resp.text,
                f"POST /api/runs failed: {resp.status_code} {resp.text}",
            )
        return resp.json()

    async def get_run(self, run_id: str) -> Dict[str, Any]:
        path = f"/api/runs/{run_id}"
        resp = await self._send("GET", path)
        if not resp.is_success:
            raise StatusQueryError(resp.status_code, resp.text, f"GET {path} failed: {resp.status_code}")
        return resp.json()

    async def get_summary(self, run_id: str) -> Dict[str, Any]:
        resp = await self._send("GET", f"/api/runs/{run_id}/summary")
        if not resp.is_success:
            raise FetchError(resp.status_code, resp.text, f"GET /summary failed: {resp.status_code}")
        return resp.json()

    async def get_memo(self, run_id: str) -> str:
        # body decoding is left to the caller: the payload may be a JSON object or a JSON-encoded string
        resp = await self._send("GET", f"/api/runs/{run_id}/memo")
        if not resp.is_success:
            raise FetchError(
                resp.status_code, resp.text,
                f"GET /memo failed: {resp.status_code} {resp.text}",
            )
        return resp.text

    async def get_artifact(self, run_id: str, path: str, cache_token: Optional[str] = None) -> bytes:
        params = {"t": cache_token} if cache_token else None
        resp = await self._send("GET", f"/runs/{run_id}/{path.lstrip('/')}", params=params)
        if not resp.is_success:
            raise FetchError(resp.status_code, resp.text, f"GET /runs/{run_id}/{path} failed: {resp.status_code}")
        return resp.content
