"""
Decision resolution.

Turns what the reviewer clicked, plus the state of their draft, into the one
canonical request sent to the decide endpoint. The only non-obvious rule is
the modify/rerun split: a "modify" with a comment but no output edits asks
the backend to re-execute the step with the comment as guidance.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from dashboard.models import Decision, DecisionRequest, INTENTS
from review.errors import ValidationError
from review.keywords import KeywordSelection

logger = logging.getLogger(__name__)


class ResolverState(str, Enum):
    """Lifecycle of one decision."""
    IDLE = "idle"
    PENDING = "pending"  # Resolved locally, request in flight
    RESOLVED = "resolved"  # Backend accepted it
    FAILED = "failed"  # Input could not be turned into a request


@dataclass
class DecisionDraft:
    """Transient reviewer input for the open approval."""
    comment: str = ""
    requested_decision: Optional[Decision] = None  # MODIFY while the modify editor is open
    edited_output: Optional[dict[str, Any]] = None
    has_editor_changes: bool = False
    manual_output_text: str = ""  # Hand-typed JSON for the modify action

    @property
    def has_comment(self) -> bool:
        return bool(self.comment.strip())


class DecisionResolver:
    """State machine deriving canonical decisions.

    Usage:
        resolver = DecisionResolver(reviewer="alice")
        request = resolver.resolve(Decision.MODIFY, draft)  # may raise ValidationError
        ...send request...
        resolver.complete()  # or resolver.rollback() if sending failed
    """

    def __init__(self, reviewer: str):
        self.reviewer = reviewer
        self.state = ResolverState.IDLE
        self.pending_kind: Optional[Decision] = None
        self.failure: Optional[str] = None
        self.last_request: Optional[DecisionRequest] = None

    def resolve(
        self,
        intent: Decision,
        draft: DecisionDraft,
        override: Optional[dict[str, Any]] = None,
    ) -> DecisionRequest:
        """Derive the request for a reviewer intent.

        Args:
            intent: approve, reject or modify
            draft: The reviewer's current draft
            override: Explicit edited payload, takes priority over the draft

        Raises:
            ValidationError: If the manually typed output is not valid JSON
        """
        intent = Decision(intent)
        if intent not in INTENTS:
            raise ValueError(f"Not a reviewer intent: {intent.value}")

        decision = intent
        modified_output = None
        if intent == Decision.MODIFY:
            if not draft.has_editor_changes and override is None and draft.has_comment:
                decision = Decision.RERUN
            elif override is not None:
                modified_output = override
            elif draft.has_editor_changes and draft.edited_output is not None:
                modified_output = draft.edited_output
            elif draft.manual_output_text.strip():
                modified_output = self._parse_manual_output(draft.manual_output_text)

        request = DecisionRequest(
            decision=decision,
            comment=draft.comment or None,
            modified_output=modified_output,
            reviewed_by=self.reviewer,
        )
        return self._pending(request)

    def resolve_keywords(self, selection: KeywordSelection, comment: str = "") -> DecisionRequest:
        """Derive the request for the keyword step.

        Raises:
            ValidationError: If no main keyword is selected
        """
        if not selection.is_submittable():
            self._fail(ValidationError.MISSING_MAIN_KEYWORD)
            raise ValidationError(
                ValidationError.MISSING_MAIN_KEYWORD,
                "Please select a main keyword to continue.",
            )
        request = DecisionRequest(
            decision=Decision.MODIFY,
            comment=comment or None,
            main_keyword=selection.main_keyword,
            selected_keywords=selection.to_selected_keywords(),
            reviewed_by=self.reviewer,
        )
        return self._pending(request)

    @staticmethod
    def can_approve(draft: DecisionDraft) -> bool:
        """Whether approving now would not drop the reviewer's edits."""
        if draft.has_editor_changes and draft.edited_output is None:
            return False
        if draft.requested_decision == Decision.MODIFY and not draft.has_editor_changes:
            return False
        return True

    def complete(self) -> None:
        self.state = ResolverState.RESOLVED

    def rollback(self) -> None:
        """Return to Idle after the request could not be delivered."""
        self.state = ResolverState.IDLE
        self.pending_kind = None

    def reset(self) -> None:
        self.state = ResolverState.IDLE
        self.pending_kind = None
        self.failure = None
        self.last_request = None

    def _parse_manual_output(self, text: str) -> dict[str, Any]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            self._fail(ValidationError.INVALID_JSON)
            raise ValidationError(
                ValidationError.INVALID_JSON,
                "The modified output contains invalid JSON",
            ) from e
        if not isinstance(data, dict):
            self._fail(ValidationError.INVALID_JSON)
            raise ValidationError(
                ValidationError.INVALID_JSON,
                "The modified output must be a JSON object",
            )
        return data

    def _pending(self, request: DecisionRequest) -> DecisionRequest:
        self.state = ResolverState.PENDING
        self.pending_kind = request.decision
        self.failure = None
        self.last_request = request
        logger.debug(f"Resolved {request.decision.value} for reviewer {self.reviewer}")
        return request

    def _fail(self, reason: str) -> None:
        self.state = ResolverState.FAILED
        self.pending_kind = None
        self.failure = reason
