"""
Review Desk core.

Provides:
  - Keyword selection for the SEO keywords step
  - Change tracking for edited step output
  - Decision resolution (approve / reject / modify / rerun)
  - Job status polling with monotonic step progress
  - Per-approval review sessions
  - Reviewer notifications
"""

from .errors import (
    ReviewError,
    ValidationError,
    ConflictError,
    TransportError,
)

from .keywords import (
    KeywordCategory,
    KeywordSelection,
    KeywordCatalog,
)

from .editor import EditorTracker

from .decisions import (
    DecisionDraft,
    DecisionResolver,
    ResolverState,
)

from .poller import (
    JobPoller,
    PollUpdate,
    StepState,
)

from .notify import (
    Notification,
    NotificationAction,
    NotificationLevel,
    Notifier,
    ConsoleNotifier,
    RecordingNotifier,
)

from .session import (
    ApprovalSession,
    CANCEL_CONFIRMATION,
)

__all__ = [
    # Errors
    "ReviewError",
    "ValidationError",
    "ConflictError",
    "TransportError",

    # Keywords
    "KeywordCategory",
    "KeywordSelection",
    "KeywordCatalog",

    # Editing
    "EditorTracker",

    # Decisions
    "DecisionDraft",
    "DecisionResolver",
    "ResolverState",

    # Polling
    "JobPoller",
    "PollUpdate",
    "StepState",

    # Notifications
    "Notification",
    "NotificationAction",
    "NotificationLevel",
    "Notifier",
    "ConsoleNotifier",
    "RecordingNotifier",

    # Sessions
    "ApprovalSession",
    "CANCEL_CONFIRMATION",
]
