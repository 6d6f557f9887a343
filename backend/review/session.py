"""
Review session for one approval.

Owns the reviewer's draft, keyword selection and editor state for a single
approval, and is the only place that talks to the review API on the
reviewer's behalf. Every failure ends here as a notification; nothing raised
by the API client escapes a session action.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Optional, Protocol

from dashboard.config import AppConfig, get_config
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
from review.decisions import DecisionDraft, DecisionResolver
from review.editor import EditorTracker
from review.errors import ConflictError, TransportError, ValidationError
from review.keywords import KeywordCatalog, KeywordCategory, KeywordSelection
from review.notify import NotificationAction, Notifier
from review.poller import JobPoller, PollUpdate

logger = logging.getLogger(__name__)


CANCEL_CONFIRMATION = "Are you sure you want to cancel this job? This action cannot be undone."

# Local status once the backend accepted a decision
STATUS_AFTER = {
    Decision.APPROVE: ApprovalStatus.APPROVED,
    Decision.REJECT: ApprovalStatus.REJECTED,
    Decision.MODIFY: ApprovalStatus.MODIFIED,
    Decision.RERUN: ApprovalStatus.MODIFIED,
}

PAST_TENSE = {
    Decision.APPROVE: "approved",
    Decision.REJECT: "rejected",
    Decision.MODIFY: "modified",
    Decision.RERUN: "rerun",
}

VALIDATION_TITLES = {
    ValidationError.MISSING_MAIN_KEYWORD: "Main Keyword Required",
    ValidationError.INVALID_JSON: "Invalid JSON",
    ValidationError.UNSAVED_CHANGES: "Unsaved Changes",
    ValidationError.NOTHING_TO_MODIFY: "Nothing to Modify",
    ValidationError.KEYWORD_SELECTION_ONLY: "Keyword Selection Required",
}


class ReviewApi(Protocol):
    """The subset of `ReviewApiClient` a session needs."""

    async def get_approval(self, approval_id: str) -> ApprovalRequest: ...

    async def decide(self, approval_id: str, request: DecisionRequest) -> dict[str, Any]: ...

    async def cancel_job(self, job_id: str) -> ActionResult: ...

    async def get_job_status(self, job_id: str) -> JobView: ...

    async def retry_step(self, approval_id: str) -> RetryStepResult: ...


class ApprovalSession:
    """Controller for reviewing one approval.

    Usage:
        session = ApprovalSession(client, "apr_123", notifier)
        await session.load()
        session.set_comment("tighten the intro")
        await session.submit(Decision.MODIFY)  # becomes a rerun: no edits, has a comment
    """

    def __init__(
        self,
        client: ReviewApi,
        approval_id: str,
        notifier: Notifier,
        config: Optional[AppConfig] = None,
        on_progress: Optional[Callable[[PollUpdate], None]] = None,
    ):
        self.config = config or get_config()
        self.client = client
        self.approval_id = approval_id
        self.notifier = notifier
        self.on_progress = on_progress

        self.resolver = DecisionResolver(reviewer=self.config.reviewer)
        self.poller = JobPoller(
            self.config.pipeline_steps,
            max_failures=self.config.max_poll_failures,
            on_update=self._on_poll_update,
        )

        self.approval: Optional[ApprovalRequest] = None
        self.draft = DecisionDraft()
        self.keywords = KeywordSelection()
        self.catalog = KeywordCatalog()
        self.editor = EditorTracker()

        self.submitting = False
        self.cancelling = False
        self.closed = False
        self.retry_available = False
        self.conflicted = False

        self._loaded_id: Optional[str] = None
        self._load_seq = 0
        self._watch_task: Optional[asyncio.Task] = None

    # --- State ---

    @property
    def is_keyword_step(self) -> bool:
        return self.approval is not None and self.approval.pipeline_step == self.config.keyword_step

    @property
    def is_already_decided(self) -> bool:
        return self.approval is not None and self.approval.is_decided

    @property
    def watch_task(self) -> Optional[asyncio.Task]:
        """The background poll started by `watch_job`, if any."""
        return self._watch_task

    # --- Loading ---

    async def open(self, approval_id: str) -> Optional[ApprovalRequest]:
        """Switch the session to another approval."""
        self.approval_id = approval_id
        return await self.load()

    async def load(self) -> Optional[ApprovalRequest]:
        """Fetch the approval; a load superseded by a newer one is discarded."""
        self._load_seq += 1
        seq = self._load_seq
        requested_id = self.approval_id
        try:
            approval = await self.client.get_approval(requested_id)
        except (TransportError, ConflictError) as e:
            self.notifier.error(
                "Failed to load approval",
                str(e),
                action=NotificationAction("Retry", self.load),
            )
            return None
        if seq != self._load_seq or self.closed or requested_id != self.approval_id:
            logger.debug(f"Discarding superseded load of approval {requested_id}")
            return None
        self._apply(approval)
        return approval

    async def refresh(self) -> Optional[ApprovalRequest]:
        return await self.load()

    def _apply(self, approval: ApprovalRequest) -> None:
        self.approval = approval
        self.conflicted = False
        if approval.id != self._loaded_id:
            self._loaded_id = approval.id
            self._reset_for(approval)

    def _reset_for(self, approval: ApprovalRequest) -> None:
        logger.info(f"Opened approval {approval.id} ({approval.pipeline_step}, {approval.status.value})")
        self.draft = DecisionDraft()
        self.resolver.reset()
        self.retry_available = False
        if approval.pipeline_step == self.config.keyword_step:
            self.keywords = KeywordSelection.from_output_data(approval.output_data)
            self.catalog = KeywordCatalog.from_output_data(approval.output_data)
            self.editor = EditorTracker()
        else:
            self.keywords = KeywordSelection()
            self.catalog = KeywordCatalog()
            self.editor = EditorTracker(approval.output_data)

    # --- Draft editing ---

    def set_comment(self, comment: str) -> None:
        self.draft.comment = comment

    def edit_output(self, data: dict[str, Any]) -> bool:
        self.editor.update(data)
        return self._sync_editor()

    def edit_field(self, key: str, value: Any) -> bool:
        self.editor.set_field(key, value)
        return self._sync_editor()

    def set_manual_output(self, text: str) -> None:
        self.draft.manual_output_text = text

    def begin_modify(self) -> None:
        """Open modify editing mode, seeded with the editor's changes."""
        self.draft.requested_decision = Decision.MODIFY
        if self.editor.has_changes:
            self.draft.manual_output_text = json.dumps(self.editor.edited, indent=2)

    def cancel_modify(self) -> None:
        """Leave modify editing mode, discarding edits."""
        self.draft.requested_decision = None
        self.draft.manual_output_text = ""
        self.editor.reset()
        self._sync_editor()

    def _sync_editor(self) -> bool:
        self.draft.edited_output = self.editor.edited
        self.draft.has_editor_changes = self.editor.has_changes
        return self.draft.has_editor_changes

    # --- Keyword selection ---

    def set_main_keyword(self, keyword: str) -> None:
        self.keywords = self.keywords.set_main_keyword(keyword)

    def promote(self, keyword: str, from_category: KeywordCategory) -> None:
        self.keywords = self.keywords.promote(keyword, KeywordCategory(from_category))

    def toggle(self, category: KeywordCategory, keyword: str) -> None:
        self.keywords = self.keywords.toggle(KeywordCategory(category), keyword)

    def select_all(self, category: KeywordCategory) -> None:
        category = KeywordCategory(category)
        self.keywords = self.keywords.select_all(category, self.catalog.keywords(category))

    def deselect_all(self, category: KeywordCategory) -> None:
        self.keywords = self.keywords.deselect_all(KeywordCategory(category))

    # --- Decisions ---

    async def submit(
        self,
        intent: Decision,
        override: Optional[dict[str, Any]] = None,
    ) -> Optional[DecisionRequest]:
        """Submit approve, reject or modify.

        On the keyword step only modify is accepted; it submits the keyword
        selection.

        Returns the request the backend accepted, or None when nothing was
        accepted (the reason has been notified).
        """
        intent = Decision(intent)
        if self.is_keyword_step and intent == Decision.MODIFY:
            return await self.submit_keywords()
        if not self._can_decide():
            return None

        try:
            self._check_intent(intent, override)
            request = self.resolver.resolve(intent, self.draft, override)
        except ValidationError as e:
            self._notify_invalid(e)
            return None
        return await self._send(request, retry=lambda: self.submit(intent, override))

    async def submit_keywords(self) -> Optional[DecisionRequest]:
        """Submit the keyword selection as a modify decision."""
        if not self._can_decide():
            return None
        try:
            request = self.resolver.resolve_keywords(self.keywords, self.draft.comment)
        except ValidationError as e:
            self._notify_invalid(e)
            return None
        return await self._send(request, retry=self.submit_keywords)

    def _can_decide(self) -> bool:
        if self.closed:
            return False
        if self.submitting:
            logger.debug("Decision already in flight; ignoring")
            return False
        if self.approval is None:
            self.notifier.error("Approval not loaded", "Load the approval before deciding.")
            return False
        # Read at action time: another reviewer may have decided since load
        if self.approval.is_decided:
            self.notifier.error(
                "Already Decided",
                f"This approval has already been {self.approval.status.value}.",
            )
            return False
        if self.conflicted:
            self.notifier.error("Already Decided", "This approval was decided elsewhere. Reload to see it.")
            return False
        return True

    def _check_intent(self, intent: Decision, override: Optional[dict[str, Any]]) -> None:
        if self.is_keyword_step:
            raise ValidationError(
                ValidationError.KEYWORD_SELECTION_ONLY,
                f"The {self.approval.pipeline_step} step only accepts a keyword selection.",
            )
        if intent == Decision.APPROVE and not self.resolver.can_approve(self.draft):
            raise ValidationError(
                ValidationError.UNSAVED_CHANGES,
                "Submit or cancel the modification before approving.",
            )
        if intent == Decision.REJECT and self.draft.requested_decision == Decision.MODIFY:
            raise ValidationError(
                ValidationError.UNSAVED_CHANGES,
                "Submit or cancel the modification before rejecting.",
            )
        if intent == Decision.MODIFY and not (
            override is not None
            or self.draft.has_editor_changes
            or self.draft.has_comment
            or self.draft.manual_output_text.strip()
        ):
            raise ValidationError(
                ValidationError.NOTHING_TO_MODIFY,
                "Edit the output or add a comment to rerun the step.",
            )

    async def _send(
        self,
        request: DecisionRequest,
        retry: Callable[[], Any],
    ) -> Optional[DecisionRequest]:
        approval = self.approval
        self.submitting = True
        try:
            if self.config.recheck_before_submit:
                # Invalidates loads that started before this check
                self._load_seq += 1
                fresh = await self.client.get_approval(approval.id)
                self._apply(fresh)
                if fresh.is_decided:
                    raise ConflictError(f"This approval has already been {fresh.status.value}.")
            response = await self.client.decide(approval.id, request)
        except ConflictError as e:
            self.resolver.rollback()
            self.conflicted = not self.is_already_decided
            self.notifier.error("Already Decided", str(e))
            return None
        except TransportError as e:
            self.resolver.rollback()
            self.notifier.error(
                "Decision failed",
                str(e),
                action=NotificationAction("Retry", retry),
            )
            return None
        finally:
            self.submitting = False

        self.resolver.complete()
        self.approval = self._decided_approval(approval, request, response)
        await self._after_decision(request)
        return request

    def _decided_approval(
        self,
        approval: ApprovalRequest,
        request: DecisionRequest,
        response: dict[str, Any],
    ) -> ApprovalRequest:
        if response.get("id") == approval.id and "status" in response:
            try:
                return ApprovalRequest.model_validate(response)
            except ValueError:
                logger.debug("Decide response is not a full approval; updating locally")
        return approval.model_copy(update={
            "status": STATUS_AFTER[request.decision],
            "reviewed_by": request.reviewed_by,
            "user_comment": request.comment,
        })

    async def _after_decision(self, request: DecisionRequest) -> None:
        step = self.approval.pipeline_step or "step"
        if request.selected_keywords is not None:
            self.notifier.success(
                "Keywords Selected",
                f"Selected {self.keywords.total_selected()} keyword(s) successfully",
            )
        elif request.decision == Decision.REJECT:
            self.retry_available = True
            self.notifier.error(
                "Content Rejected",
                f"Content from {step} was rejected. You can retry processing.",
                action=NotificationAction("Retry", self.retry_step),
            )
            return
        else:
            action = PAST_TENSE[request.decision]
            self.notifier.success(f"Approval {action}", f"Content from {step} has been {action}")
        await self.teardown()

    # --- Job actions ---

    async def cancel_job(self, confirm: Callable[[str], bool]) -> bool:
        """Cancel the approval's job after the reviewer confirms."""
        if self.closed or self.cancelling or self.approval is None:
            return False
        if self.approval.is_decided:
            self.notifier.error(
                "Already Decided",
                f"This approval has already been {self.approval.status.value}.",
            )
            return False
        if not confirm(CANCEL_CONFIRMATION):
            return False

        self.cancelling = True
        try:
            await self.client.cancel_job(self.approval.job_id)
        except (TransportError, ConflictError) as e:
            self.notifier.error("Cancel Failed", str(e))
            return False
        finally:
            self.cancelling = False

        self.notifier.success("Job Cancelled", "The job has been cancelled successfully.")
        await self.teardown()
        return True

    async def retry_step(self) -> Optional[str]:
        """Re-run a rejected step; returns the new job id and starts watching it."""
        if self.closed or self.approval is None:
            return None
        if not (self.retry_available or self.approval.status == ApprovalStatus.REJECTED):
            self.notifier.warning("Retry unavailable", "Only rejected steps can be retried.")
            return None
        try:
            result = await self.client.retry_step(self.approval.id)
        except (TransportError, ConflictError) as e:
            self.notifier.error("Retry Failed", str(e))
            return None

        self.retry_available = False
        step = self.approval.pipeline_step or "step"
        self.notifier.success(
            "Step Retry Initiated",
            f'Step "{step}" is being retried. Job ID: {result.job_id[:8]}...',
        )
        self.watch_job(result.job_id)
        return result.job_id

    def watch_job(self, job_id: str) -> asyncio.Task:
        """Poll a job in the background; replaces any job being watched."""
        if self._watch_task and not self._watch_task.done():
            self._watch_task.cancel()
        self._watch_task = asyncio.create_task(
            self.poller.follow(job_id, self.client.get_job_status, self.config.poll_interval)
        )
        return self._watch_task

    def _on_poll_update(self, update: PollUpdate) -> None:
        if self.on_progress:
            self.on_progress(update)
        if not update.terminal:
            return
        if update.status == JobStatus.COMPLETED:
            self.notifier.success("Processing complete", f"Job {update.job_id} completed")
        elif update.status == JobStatus.FAILED:
            self.notifier.error("Processing failed", update.error or "An error occurred during processing")
        else:
            self.notifier.info("Job cancelled", f"Job {update.job_id} was cancelled")

    async def teardown(self) -> None:
        """Close the session; later actions and late responses are inert."""
        self.closed = True
        self.poller.detach()
        task = self._watch_task
        self._watch_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _notify_invalid(self, error: ValidationError) -> None:
        self.notifier.error(VALIDATION_TITLES.get(error.code, "Cannot submit"), str(error))
