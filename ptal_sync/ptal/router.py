"""Routing of inbound pull request events to reconciliations."""

import logging
from dataclasses import dataclass, field
from typing import Any

from .exceptions import ValidationError
from .models import PullRequestIdentity, ReconcileBatch
from .reconciler import Reconciler, reconcile_isolated
from .store import RecordStore

logger = logging.getLogger(__name__)

SUPPORTED_EVENTS = frozenset(
    {"pull_request", "pull_request_review", "pull_request_review_comment"}
)

DEFAULT_MAX_CONCURRENCY = 10


@dataclass(frozen=True)
class PullRequestEvent:
    """Normalized inbound event that names a pull request.

    ``raw_pull_request`` is kept for logging only. Status is always derived
    from freshly fetched data, never from the event payload.
    """

    kind: str
    owner: str
    repository: str
    pr_number: int
    raw_pull_request: dict[str, Any] | None = field(
        default=None, compare=False, repr=False
    )
    delivery_id: str | None = None

    @property
    def identity(self) -> PullRequestIdentity:
        return PullRequestIdentity(self.owner, self.repository, self.pr_number)

    @classmethod
    def from_webhook(
        cls, event_name: str, payload: dict[str, Any], delivery_id: str | None = None
    ) -> "PullRequestEvent | None":
        """Normalize a GitHub webhook body.

        Returns:
            The event, or None when the event kind is not routed

        Raises:
            ValidationError: If a routed event lacks the pull request identity
        """
        if event_name not in SUPPORTED_EVENTS:
            return None

        pull_request = payload.get("pull_request") or {}
        repository = payload.get("repository") or {}
        owner = (repository.get("owner") or {}).get("login")
        name = repository.get("name")
        number = pull_request.get("number", payload.get("number"))

        if not owner or not name or not isinstance(number, int):
            raise ValidationError(
                f"'{event_name}' event is missing the pull request identity",
                details={"delivery_id": delivery_id},
            )

        return cls(
            kind=event_name,
            owner=owner,
            repository=name,
            pr_number=number,
            raw_pull_request=pull_request or None,
            delivery_id=delivery_id,
        )


@dataclass
class RoutingResult:
    """What handling one event did."""

    event: PullRequestEvent
    matched: int = 0
    batch: ReconcileBatch = field(default_factory=ReconcileBatch)
    ignored: bool = False

    @property
    def failed(self) -> int:
        return len(self.batch.failures)


class EventRouter:
    """Reconciles every record that announces the pull request an event names."""

    def __init__(
        self,
        store: RecordStore,
        reconciler: Reconciler,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ):
        self.store = store
        self.reconciler = reconciler
        self.max_concurrency = max_concurrency

    async def handle(self, event: PullRequestEvent) -> RoutingResult:
        """Handle one event.

        Every supported kind triggers the same reconciliation. Failures of
        individual records are logged and counted, never raised.
        """
        if event.kind not in SUPPORTED_EVENTS:
            logger.debug(f"Ignoring unsupported event kind '{event.kind}'")
            return RoutingResult(event=event, ignored=True)

        records = await self.store.get_by_pr_identity(
            event.owner, event.repository, event.pr_number
        )
        if not records:
            logger.debug(f"No records for {event.identity}, nothing to do")
            return RoutingResult(event=event)

        logger.info(
            f"Reconciling {len(records)} record(s) for {event.identity} "
            f"after '{event.kind}' event",
            extra={"delivery_id": event.delivery_id},
        )
        batch = await reconcile_isolated(self.reconciler, records, self.max_concurrency)

        if batch.failures:
            logger.warning(
                f"{len(batch.failures)} of {len(records)} reconciliation(s) "
                f"failed for {event.identity}",
                extra={"delivery_id": event.delivery_id},
            )
        return RoutingResult(event=event, matched=len(records), batch=batch)
