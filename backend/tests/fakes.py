"""Test doubles for the review API."""

import asyncio
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from dashboard.models import (
    ActionResult,
    ApprovalRequest,
    ApprovalStatus,
    Decision,
    DecisionRequest,
    JobStatus,
    JobView,
    RetryStepResult,
)
from review.session import STATUS_AFTER


KEYWORD_OUTPUT = {
    "main_keyword": "ai agents",
    "primary_keywords": ["ai agents", "agent frameworks", "llm agents"],
    "secondary_keywords": ["autonomous agents", "agent orchestration"],
    "lsi_keywords": ["tool calling", "planning"],
    "long_tail_keywords": ["how to build ai agents in python"],
    "keyword_density": {"ai agents": 2.4, "llm agents": 0.8},
}

ARTICLE_OUTPUT = {
    "title": "Building Agents",
    "body": "Agents are programs that act.",
    "tags": ["ai", "agents"],
}


def make_approval(**fields: Any) -> ApprovalRequest:
    data = {
        "id": "apr-1",
        "job_id": "job-1",
        "pipeline_step": "article_generation",
        "status": "pending",
        "output_data": dict(ARTICLE_OUTPUT),
        "input_data": {"title": "Agents"},
        "confidence_score": 0.82,
        "suggestions": ["Shorten the intro"],
    }
    data.update(fields)
    return ApprovalRequest.model_validate(data)


class FakeReviewBackend:
    """In-memory review API served by FastAPI, reached through httpx.ASGITransport."""

    def __init__(self):
        self.approvals: dict[str, dict[str, Any]] = {}
        self.job_scripts: dict[str, list[dict[str, Any]]] = {}
        self.decisions: list[tuple[str, dict[str, Any]]] = []
        self.cancelled: list[str] = []
        self.retried: list[str] = []
        self.calls: list[str] = []
        self.fail_status: dict[str, int] = {}  # path prefix -> HTTP status to return
        self.fail_once_status: dict[str, int] = {}  # same, cleared after the first hit
        self.app = self._build_app()

    def add_approval(self, **fields: Any) -> dict[str, Any]:
        approval = make_approval(**fields).model_dump(mode="json")
        self.approvals[approval["id"]] = approval
        return approval

    def script_job(self, job_id: str, *statuses: dict[str, Any]) -> None:
        """Each poll returns the next status; the last one repeats."""
        self.job_scripts[job_id] = [{"job_id": job_id, **s} for s in statuses]

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        backend = self

        @app.middleware("http")
        async def record(request: Request, call_next):
            path = request.url.path
            backend.calls.append(f"{request.method} {path}")
            for prefix, status in backend.fail_status.items():
                if path.startswith(prefix):
                    return JSONResponse({"detail": "backend exploded"}, status_code=status)
            for prefix in list(backend.fail_once_status):
                if path.startswith(prefix):
                    status = backend.fail_once_status.pop(prefix)
                    return JSONResponse({"detail": "backend hiccup"}, status_code=status)
            return await call_next(request)

        @app.get("/v1/approvals/pending")
        async def pending(job_id: Optional[str] = None):
            items = [
                a for a in backend.approvals.values()
                if a["status"] == "pending" and (job_id is None or a["job_id"] == job_id)
            ]
            return {"approvals": items, "total": len(backend.approvals), "pending": len(items)}

        @app.get("/v1/approvals/{approval_id}")
        async def get_approval(approval_id: str):
            if approval_id not in backend.approvals:
                raise HTTPException(status_code=404, detail="Approval not found")
            return backend.approvals[approval_id]

        @app.post("/v1/approvals/{approval_id}/decide")
        async def decide(approval_id: str, payload: dict[str, Any]):
            approval = backend.approvals.get(approval_id)
            if approval is None:
                raise HTTPException(status_code=404, detail="Approval not found")
            if approval["status"] != "pending":
                raise HTTPException(status_code=409, detail=f"Approval already {approval['status']}")
            backend.decisions.append((approval_id, payload))
            approval["status"] = STATUS_AFTER[Decision(payload["decision"])].value
            approval["reviewed_by"] = payload.get("reviewed_by")
            approval["user_comment"] = payload.get("comment")
            return approval

        @app.post("/v1/approvals/{approval_id}/retry")
        async def retry(approval_id: str):
            backend.retried.append(approval_id)
            return {
                "job_id": f"retry-{approval_id}",
                "step_name": backend.approvals[approval_id]["pipeline_step"],
                "status": "queued",
                "retry_attempt": len(backend.retried),
                "approval_id": approval_id,
            }

        @app.delete("/v1/jobs/{job_id}")
        async def cancel(job_id: str):
            backend.cancelled.append(job_id)
            return {"success": True, "message": "Job cancelled"}

        @app.get("/v1/jobs/{job_id}/status")
        async def job_status(job_id: str):
            script = backend.job_scripts.get(job_id)
            if not script:
                raise HTTPException(status_code=404, detail="Job not found")
            status = script.pop(0) if len(script) > 1 else script[0]
            return {"success": True, "message": "ok", **status}

        return app


class StubReviewApi:
    """Scriptable stand-in for ReviewApiClient used by session tests."""

    def __init__(self, approval: ApprovalRequest):
        self.approvals = {approval.id: approval}
        self.calls: list[tuple[Any, ...]] = []
        self.job_views: dict[str, list[JobView]] = {}

        self.get_gates: dict[str, asyncio.Event] = {}
        self.decide_gate: Optional[asyncio.Event] = None
        self.decide_entered = asyncio.Event()

        self.decide_error: Optional[Exception] = None
        self.cancel_error: Optional[Exception] = None
        self.retry_job_id = "job-retry"

    def set_status(self, approval_id: str, status: ApprovalStatus) -> None:
        self.approvals[approval_id] = self.approvals[approval_id].model_copy(update={"status": status})

    def call_names(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def get_approval(self, approval_id: str) -> ApprovalRequest:
        self.calls.append(("get_approval", approval_id))
        gate = self.get_gates.get(approval_id)
        if gate:
            await gate.wait()
        return self.approvals[approval_id]

    async def decide(self, approval_id: str, request: DecisionRequest) -> dict[str, Any]:
        self.calls.append(("decide", approval_id, request))
        self.decide_entered.set()
        if self.decide_gate:
            await self.decide_gate.wait()
        if self.decide_error:
            error, self.decide_error = self.decide_error, None
            raise error
        self.set_status(approval_id, STATUS_AFTER[request.decision])
        return {"success": True}

    async def cancel_job(self, job_id: str) -> ActionResult:
        self.calls.append(("cancel_job", job_id))
        if self.cancel_error:
            raise self.cancel_error
        return ActionResult(success=True, message="Job cancelled")

    async def retry_step(self, approval_id: str) -> RetryStepResult:
        self.calls.append(("retry_step", approval_id))
        return RetryStepResult(job_id=self.retry_job_id, approval_id=approval_id)

    async def get_job_status(self, job_id: str) -> JobView:
        self.calls.append(("get_job_status", job_id))
        views = self.job_views.get(job_id) or [JobView(job_id=job_id, status=JobStatus.QUEUED)]
        return views.pop(0) if len(views) > 1 else views[0]
