"""PTAL synchronization engine.

Keeps Discord announcements in step with the live status of the GitHub pull
requests they describe.
"""

from .announcements import AnnouncementService, parse_pull_request_url
from .exceptions import (
    ConflictError,
    ConsistencyFault,
    InvalidTargetError,
    NotFoundError,
    PtalError,
    TransientReconcileError,
    TransientRemoteError,
    ValidationError,
)
from .gateways import DiscordChatSurface, GitHubPullRequestSource
from .interfaces import ChatSurface, PullRequestSource
from .locks import KeyedLock
from .models import (
    DisplayPayload,
    PullRequestIdentity,
    ReconcileAction,
    ReconcileBatch,
    ReconcileFailure,
    ReconcileOutcome,
    Requester,
)
from .reconciler import Reconciler, reconcile_isolated
from .render import RenderSettings, compose_announcement, render_announcement
from .router import EventRouter, PullRequestEvent, RoutingResult
from .status import PrStatus, Review, ReviewDecision, dedupe_reviews, derive_status
from .store import RecordStore
from .sweeper import SweepResult, Sweeper

__all__ = [
    "AnnouncementService",
    "ChatSurface",
    "ConflictError",
    "ConsistencyFault",
    "DiscordChatSurface",
    "DisplayPayload",
    "EventRouter",
    "GitHubPullRequestSource",
    "InvalidTargetError",
    "KeyedLock",
    "NotFoundError",
    "PrStatus",
    "PtalError",
    "PullRequestEvent",
    "PullRequestIdentity",
    "PullRequestSource",
    "ReconcileAction",
    "ReconcileBatch",
    "ReconcileFailure",
    "ReconcileOutcome",
    "Reconciler",
    "RecordStore",
    "RenderSettings",
    "Requester",
    "Review",
    "ReviewDecision",
    "RoutingResult",
    "SweepResult",
    "Sweeper",
    "TransientReconcileError",
    "TransientRemoteError",
    "ValidationError",
    "compose_announcement",
    "dedupe_reviews",
    "derive_status",
    "parse_pull_request_url",
    "reconcile_isolated",
    "render_announcement",
]
