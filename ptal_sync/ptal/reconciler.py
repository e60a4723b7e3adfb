"""Reconciliation of PTAL records with live pull request state.

A reconciliation re-fetches the pull request and its reviews, derives the
status, renders the announcement and applies it to the chat message. When the
pull request is merged, the record is deleted only after the merged render
was applied, so the last thing users see is the merged state and no later
edit can follow it.

Reconciliation never reads its own prior output, so it can be repeated any
number of times. Reconciliations of the same record are serialized by a
per-message lock; different records proceed concurrently.
"""

import asyncio
import logging
from collections.abc import Awaitable, Sequence
from typing import Any, TypeVar

from ptal_sync.models import PtalRecord

from .exceptions import (
    ConsistencyFault,
    NotFoundError,
    TransientReconcileError,
    TransientRemoteError,
)
from .interfaces import ChatSurface, PullRequestSource
from .locks import KeyedLock
from .models import (
    PullRequestIdentity,
    ReconcileAction,
    ReconcileBatch,
    ReconcileFailure,
    ReconcileOutcome,
    Requester,
)
from .render import RenderSettings, compose_announcement
from .status import PrStatus
from .store import RecordStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_REMOTE_TIMEOUT = 15.0


def record_identity(record: PtalRecord) -> PullRequestIdentity:
    return PullRequestIdentity(record.owner, record.repository, record.pr_number)


def record_requester(record: PtalRecord) -> Requester | None:
    if not record.requester_name:
        return None
    return Requester(
        id=record.requester_id,
        name=record.requester_name,
        avatar_url=record.requester_avatar_url,
    )


class Reconciler:
    """Brings one record's announcement up to date with GitHub."""

    def __init__(
        self,
        store: RecordStore,
        pull_requests: PullRequestSource,
        chat: ChatSurface,
        settings: RenderSettings | None = None,
        locks: KeyedLock | None = None,
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
    ):
        """Initialize reconciler.

        Args:
            store: Record storage
            pull_requests: Source of pull request and review data
            chat: Chat surface holding the announcements
            settings: Rendering choices (roles, color, bot reviews)
            locks: Per-message locks, shared by every caller of this reconciler
            remote_timeout: Upper bound in seconds for each remote call
        """
        self.store = store
        self.pull_requests = pull_requests
        self.chat = chat
        self.settings = settings or RenderSettings()
        self.locks = locks or KeyedLock()
        self.remote_timeout = remote_timeout

    async def reconcile(self, record: PtalRecord) -> ReconcileOutcome:
        """Reconcile a single record.

        Returns:
            What was done to the record

        Raises:
            TransientReconcileError: If a remote call failed or timed out; the
                record is left untouched
            ConsistencyFault: If the merged render could not be applied, or was
                applied but the record could not be removed; the record is kept
                for the next attempt
        """
        async with self.locks.hold(record.message_id):
            # A racing reconciliation may have retired or orphaned it meanwhile
            current = await self._bounded(
                self.store.get(record.id), f"read record {record.id}"
            )
            if current is None:
                logger.debug(f"Record {record.id} already removed, skipping")
                return ReconcileOutcome(record.id, ReconcileAction.SKIPPED)
            return await self._reconcile_locked(current)

    async def _reconcile_locked(self, record: PtalRecord) -> ReconcileOutcome:
        identity = record_identity(record)

        pr_result, reviews_result = await asyncio.gather(
            self._bounded(
                self.pull_requests.fetch_pull_request(
                    identity.owner, identity.repository, identity.pr_number
                ),
                f"fetch {identity}",
            ),
            self._bounded(
                self.pull_requests.fetch_reviews(
                    identity.owner, identity.repository, identity.pr_number
                ),
                f"fetch reviews for {identity}",
            ),
            return_exceptions=True,
        )
        for result in (pr_result, reviews_result):
            if isinstance(result, NotFoundError):
                return await self._orphan(record, f"pull request {identity} not found")
        for result in (pr_result, reviews_result):
            if isinstance(result, TransientReconcileError):
                raise result
            if isinstance(result, TransientRemoteError):
                raise TransientReconcileError(
                    f"Transient failure fetching {identity}: {result}",
                    details=result.details,
                ) from result
            if isinstance(result, BaseException):
                raise result

        status, payload = compose_announcement(
            pr=pr_result,
            raw_reviews=reviews_result,
            identity=identity,
            description=record.description,
            requester=record_requester(record),
            guild_id=record.guild_id,
            settings=self.settings,
        )

        try:
            await self._bounded(
                self.chat.fetch_message(record.channel_id, record.message_id),
                f"fetch message {record.message_id}",
            )
        except NotFoundError:
            return await self._orphan(record, "announcement message no longer exists")
        except TransientReconcileError:
            raise
        except TransientRemoteError as e:
            raise TransientReconcileError(
                f"Transient failure fetching message {record.message_id}: {e}",
                details=e.details,
            ) from e

        try:
            await self._bounded(
                self.chat.edit_message(
                    record.channel_id, record.message_id, payload.to_message_json()
                ),
                f"edit message {record.message_id}",
            )
        except NotFoundError:
            return await self._orphan(record, "announcement message no longer exists")
        except TransientRemoteError as e:
            if status is PrStatus.MERGED:
                raise ConsistencyFault(
                    f"Merged state observed for {identity} but the edit failed: {e}",
                    details={"record_id": str(record.id)},
                ) from e
            if isinstance(e, TransientReconcileError):
                raise
            raise TransientReconcileError(
                f"Transient failure editing message {record.message_id}: {e}",
                details=e.details,
            ) from e

        if status is PrStatus.MERGED:
            await self._retire(record, identity)
            logger.info(
                f"Retired record {record.id}: {identity} merged",
                extra={"record_id": str(record.id), "message_id": record.message_id},
            )
            return ReconcileOutcome(record.id, ReconcileAction.RETIRED, status, payload)

        logger.debug(
            f"Updated message {record.message_id} for {identity}: {status.value}"
        )
        return ReconcileOutcome(record.id, ReconcileAction.UPDATED, status, payload)

    async def _bounded(self, call: Awaitable[T], what: str) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.remote_timeout)
        except TimeoutError as e:
            raise TransientReconcileError(
                f"Timed out after {self.remote_timeout}s: {what}"
            ) from e

    async def _retire(self, record: PtalRecord, identity: PullRequestIdentity) -> None:
        # The merged render is already applied; a retry repeats the identical edit
        try:
            await self._bounded(
                self.store.delete(record.id), f"delete record {record.id}"
            )
        except Exception as e:
            raise ConsistencyFault(
                f"Merged state applied for {identity} but the record was not "
                f"removed: {e}",
                details={"record_id": str(record.id)},
            ) from e

    async def _orphan(self, record: PtalRecord, reason: str) -> ReconcileOutcome:
        await self._bounded(self.store.delete(record.id), f"delete record {record.id}")
        logger.warning(
            f"Removed orphaned record {record.id}: {reason}",
            extra={"record_id": str(record.id), "message_id": record.message_id},
        )
        return ReconcileOutcome(record.id, ReconcileAction.ORPHANED)


async def reconcile_isolated(
    reconciler: Reconciler,
    records: Sequence[PtalRecord],
    max_concurrency: int,
) -> ReconcileBatch:
    """Reconcile records independently of each other.

    A failing record is logged and recorded in the batch; the others still
    run. At most ``max_concurrency`` reconciliations are in flight at once.
    """
    semaphore = asyncio.Semaphore(max_concurrency)

    async def run_one(record: PtalRecord) -> Any:
        async with semaphore:
            try:
                return await reconciler.reconcile(record)
            except TransientReconcileError as e:
                logger.warning(
                    f"Reconciliation of record {record.id} failed, will retry: {e}",
                    extra={"record_id": str(record.id)},
                )
                return ReconcileFailure(record.id, str(e), transient=True)
            except Exception as e:
                logger.exception(
                    f"Unexpected error reconciling record {record.id}: {e}",
                    extra={"record_id": str(record.id)},
                )
                return ReconcileFailure(record.id, str(e), transient=False)

    batch = ReconcileBatch()
    for result in await asyncio.gather(*(run_one(record) for record in records)):
        if isinstance(result, ReconcileFailure):
            batch.failures.append(result)
        else:
            batch.outcomes.append(result)
    return batch
