"""Data models for the review API."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class ApprovalStatus(str, Enum):
    """Status of an approval gate."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    MODIFIED = "modified"


class Decision(str, Enum):
    """Canonical reviewer verdicts accepted by the decide endpoint."""
    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"
    RERUN = "rerun"


# What the reviewer can click; RERUN is only ever derived.
INTENTS = (Decision.APPROVE, Decision.REJECT, Decision.MODIFY)


class JobStatus(str, Enum):
    """Status of a backend job."""
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


# --- Approvals ---

class ApprovalRequest(BaseModel):
    """A human-review gate holding a step's input and output."""
    id: str
    job_id: str
    pipeline_step: str = ""
    step_name: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] = Field(default_factory=dict)
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    suggestions: list[str] = Field(default_factory=list)
    user_comment: Optional[str] = None
    modified_output: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None

    @property
    def is_decided(self) -> bool:
        return self.status != ApprovalStatus.PENDING


class ApprovalListItem(BaseModel):
    """Summary row of the pending approvals listing."""
    id: str
    job_id: str
    agent_name: Optional[str] = None
    step_name: Optional[str] = None
    pipeline_step: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    input_title: Optional[str] = None


class PendingApprovals(BaseModel):
    """Response of the pending approvals endpoint."""
    approvals: list[ApprovalListItem] = Field(default_factory=list)
    total: int = 0
    pending: int = 0


class SelectedKeywords(BaseModel):
    """Keyword selection as sent to the decide endpoint."""
    primary: list[str] = Field(default_factory=list)
    secondary: list[str] = Field(default_factory=list)
    lsi: list[str] = Field(default_factory=list)
    long_tail: list[str] = Field(default_factory=list)


class DecisionRequest(BaseModel):
    """Outbound canonical decision."""
    decision: Decision
    comment: Optional[str] = None
    modified_output: Optional[dict[str, Any]] = None
    main_keyword: Optional[str] = None
    selected_keywords: Optional[SelectedKeywords] = None
    reviewed_by: str

    def to_payload(self) -> dict[str, Any]:
        """Wire form, omitting unset fields."""
        return self.model_dump(mode="json", exclude_none=True)


# --- Jobs ---

class JobView(BaseModel):
    """Remote job state as reported by the status endpoint."""
    job_id: str
    status: JobStatus
    progress: int = 0
    current_step: Optional[str] = None
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> int:
        if value is None:
            return 0
        return max(0, min(100, int(float(value))))


class RetryStepResult(BaseModel):
    """Response of the retry-step endpoint."""
    job_id: str
    step_name: Optional[str] = None
    status: Optional[str] = None
    message: Optional[str] = None
    retry_attempt: Optional[int] = None
    approval_id: Optional[str] = None


class ActionResult(BaseModel):
    """Generic `{success, message}` response."""
    success: bool = True
    message: str = ""
