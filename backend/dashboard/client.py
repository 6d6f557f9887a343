"""Async HTTP client for the review API.

Wraps the approval and job endpoints consumed by review sessions. Every
failure leaves this module as a `ConflictError` (HTTP 409) or a
`TransportError`; httpx exceptions never reach the session.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from dashboard.config import AppConfig, get_config
from dashboard.models import (
    ActionResult,
    ApprovalRequest,
    DecisionRequest,
    JobView,
    PendingApprovals,
    RetryStepResult,
)
from review.errors import ConflictError, TransportError
from review.retry import DEFAULT_RETRY, RetryConfig, retry_async

logger = logging.getLogger(__name__)


class ReviewApiClient:
    """Client for the approvals and jobs endpoints.

    Usage:
        async with ReviewApiClient(config) as client:
            approval = await client.get_approval("apr_123")
            await client.decide(approval.id, request)

    An existing `httpx.AsyncClient` can be passed in (tests hand in one bound
    to an ASGI app); it is then not closed by this client.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        http: Optional[httpx.AsyncClient] = None,
        retry: RetryConfig = DEFAULT_RETRY,
    ):
        self.config = config or get_config()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=self.config.timeout,
            headers={"Content-Type": "application/json"},
        )
        self._retry = retry

    async def __aenter__(self) -> "ReviewApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # --- Approvals ---

    async def get_approval(self, approval_id: str) -> ApprovalRequest:
        data = await self._request("get approval", "GET", f"/v1/approvals/{approval_id}", retry=True)
        return self._parse("get approval", ApprovalRequest, data)

    async def list_pending_approvals(self, job_id: Optional[str] = None) -> PendingApprovals:
        params = {"job_id": job_id} if job_id else None
        data = await self._request("list approvals", "GET", "/v1/approvals/pending", params=params, retry=True)
        return self._parse("list approvals", PendingApprovals, data)

    async def decide(self, approval_id: str, request: DecisionRequest) -> dict[str, Any]:
        logger.info(f"Submitting {request.decision.value} for approval {approval_id}")
        return await self._request(
            "submit decision",
            "POST",
            f"/v1/approvals/{approval_id}/decide",
            json=request.to_payload(),
        )

    async def retry_step(self, approval_id: str) -> RetryStepResult:
        data = await self._request("retry step", "POST", f"/v1/approvals/{approval_id}/retry")
        return self._parse("retry step", RetryStepResult, data)

    # --- Jobs ---

    async def cancel_job(self, job_id: str) -> ActionResult:
        data = await self._request("cancel job", "DELETE", f"/v1/jobs/{job_id}")
        result = self._parse("cancel job", ActionResult, data)
        if not result.success:
            raise TransportError("cancel job", result.message or "backend refused cancellation")
        return result

    async def get_job_status(self, job_id: str) -> JobView:
        # No retry here: the poller treats a failed poll as a transient tick
        data = await self._request("poll job", "GET", f"/v1/jobs/{job_id}/status")
        data.setdefault("job_id", job_id)
        return self._parse("poll job", JobView, data)

    # --- Internals ---

    async def _request(
        self,
        operation: str,
        method: str,
        url: str,
        *,
        retry: bool = False,
        **kwargs: Any,
    ) -> dict[str, Any]:
        async def send() -> httpx.Response:
            response = await self._http.request(method, url, **kwargs)
            response.raise_for_status()
            return response

        try:
            if retry:
                response = await retry_async(send, config=self._retry)
            else:
                response = await send()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            logger.error(f"{operation}: HTTP {status} {detail}")
            if status == 409:
                raise ConflictError(detail or f"{operation}: already decided") from e
            raise TransportError(operation, detail or f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.error(f"{operation}: {type(e).__name__}: {e}")
            raise TransportError(operation, str(e) or type(e).__name__) from e

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(operation, "response is not JSON") from e
        if not isinstance(data, dict):
            raise TransportError(operation, "response is not a JSON object")
        return data

    @staticmethod
    def _parse(operation: str, model: type, data: dict[str, Any]):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            raise TransportError(operation, f"unexpected response shape: {e.error_count()} error(s)") from e


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of a backend error message."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        for key in ("detail", "message", "error"):
            if isinstance(body.get(key), str):
                return body[key]
    return str(body)[:200]
