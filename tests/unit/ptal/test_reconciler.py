"""
Unit tests for the reconciler.

Why: Reconciliation is the only path that edits announcements and retires
     records; it must converge, tolerate lost remote objects and never leave a
     message edited after its merged render.

What: Tests updated, retired, orphaned and skipped outcomes, transient and
      timeout failures, the merged consistency fault, idempotence, per-record
      serialization and failure isolation across records.

How: Uses a real RecordStore on aiosqlite with in-memory GitHub and Discord
     fakes from tests.fixtures.ptal.
"""

import asyncio
import copy
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from ptal_sync.models import PtalRecord
from ptal_sync.ptal import (
    ConsistencyFault,
    NotFoundError,
    PrStatus,
    ReconcileAction,
    Reconciler,
    RecordStore,
    Requester,
    TransientReconcileError,
    TransientRemoteError,
    reconcile_isolated,
)
from tests.fixtures.ptal import (
    ACME_WIDGETS_42,
    CHANNEL_ID,
    FakeChatSurface,
    FakePullRequestSource,
    embed_field,
    make_pull_request,
    make_review,
)

ACME_KEY = ("acme", "widgets", 42)


class TestReconcile:
    """Tests for Reconciler.reconcile outcomes."""

    async def test_updates_message_and_keeps_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: An open PR's announcement should reflect its current status
        What: Tests that the message is edited and the record kept
        How: Reconciles an open, unreviewed PR and inspects the edit
        """
        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.UPDATED
        assert outcome.status is PrStatus.WAITING
        assert outcome.payload is not None
        assert chat.messages[record.message_id] == outcome.payload.to_message_json()
        assert embed_field(chat.messages[record.message_id], "Status") == (
            PrStatus.WAITING.label
        )
        assert chat.messages[record.message_id]["content"].endswith("fix memory leak")
        assert await store.get(record.id) is not None

    async def test_reflects_latest_reviews(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        pull_requests.add_review(ACME_WIDGETS_42, make_review("alice", "APPROVED"))
        pull_requests.add_review(
            ACME_WIDGETS_42, make_review("alice", "CHANGES_REQUESTED")
        )

        outcome = await reconciler.reconcile(record)

        assert outcome.status is PrStatus.CHANGES
        assert ":no_entry_sign: [@alice]" in embed_field(
            chat.messages[record.message_id], "Reviews"
        )

    async def test_idempotent(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: Events and sweeps may reconcile the same unchanged PR repeatedly
        What: Tests that repeated reconciliation yields identical edits
        How: Reconciles three times without changing remote state
        """
        pull_requests.add_review(ACME_WIDGETS_42, make_review("alice", "APPROVED"))

        outcomes = [await reconciler.reconcile(record) for _ in range(3)]

        assert {o.action for o in outcomes} == {ReconcileAction.UPDATED}
        assert outcomes[0].payload == outcomes[1].payload == outcomes[2].payload
        edits = chat.edits_for(record.message_id)
        assert len(edits) == 3
        assert edits[0] == edits[1] == edits[2]

    async def test_merged_renders_then_retires(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: The last thing users see must be the merged state
        What: Tests that the merged render is applied before the record is deleted
        How: Merges the PR, reconciles, and checks edit then deletion
        """
        pull_requests.update(ACME_WIDGETS_42, merged=True, mergeable=None)

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.RETIRED
        assert outcome.status is PrStatus.MERGED
        assert embed_field(chat.messages[record.message_id], "Status") == (
            PrStatus.MERGED.label
        )
        assert await store.get(record.id) is None

    async def test_no_edit_after_merged_render(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A late event for a retired record must not overwrite the merged render
        What: Tests that reconciling a retired record is skipped
        How: Retires the record, reopens the PR remotely and reconciles the stale copy
        """
        pull_requests.update(ACME_WIDGETS_42, merged=True)
        await reconciler.reconcile(record)
        edits_after_merge = len(chat.edits)

        pull_requests.update(ACME_WIDGETS_42, merged=False)
        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.SKIPPED
        assert len(chat.edits) == edits_after_merge
        assert pull_requests.fetch_count == 1

    async def test_pull_request_gone_orphans_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A deleted repository or PR leaves nothing to sync
        What: Tests that a 404 on the PR deletes the record without raising
        How: Removes the PR from the fake and reconciles
        """
        del pull_requests.pulls[ACME_KEY]

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.ORPHANED
        assert await store.get(record.id) is None
        assert chat.edits == []

    async def test_reviews_gone_orphans_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
    ) -> None:
        pull_requests.review_errors[ACME_KEY] = NotFoundError("gone")

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.ORPHANED
        assert await store.get(record.id) is None

    async def test_message_gone_orphans_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: Someone may delete the announcement by hand
        What: Tests that a missing message deletes the record without raising
        How: Removes the message from the fake chat and reconciles
        """
        del chat.messages[record.message_id]

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.ORPHANED
        assert await store.get(record.id) is None
        assert chat.edits == []

    async def test_message_deleted_before_edit_orphans_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        chat.edit_errors[record.message_id] = NotFoundError("Unknown Message")

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.ORPHANED
        assert await store.get(record.id) is None

    async def test_transient_github_failure_leaves_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        pull_requests.pull_errors[ACME_KEY] = TransientRemoteError("502 Bad Gateway")

        with pytest.raises(TransientReconcileError) as exc_info:
            await reconciler.reconcile(record)

        assert not isinstance(exc_info.value, ConsistencyFault)
        assert isinstance(exc_info.value.__cause__, TransientRemoteError)
        assert await store.get(record.id) is not None
        assert chat.edits == []

    async def test_transient_message_fetch_leaves_record(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        chat.fetch_errors[record.message_id] = TransientRemoteError("rate limited")

        with pytest.raises(TransientReconcileError):
            await reconciler.reconcile(record)

        assert await store.get(record.id) is not None

    async def test_timeout_is_transient(
        self,
        store: RecordStore,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A hung remote call must not block a reconciliation forever
        What: Tests that exceeding the remote timeout raises a transient error
        How: Delays the fake GitHub beyond a short remote timeout
        """
        pull_requests.delay = 1.0
        reconciler = Reconciler(store, pull_requests, chat, remote_timeout=0.05)

        with pytest.raises(TransientReconcileError, match="Timed out"):
            await reconciler.reconcile(record)

        assert await store.get(record.id) is not None

    async def test_failed_edit_of_open_pr_is_transient(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        chat.edit_errors[record.message_id] = TransientRemoteError("500")

        with pytest.raises(TransientReconcileError) as exc_info:
            await reconciler.reconcile(record)

        assert not isinstance(exc_info.value, ConsistencyFault)
        assert await store.get(record.id) is not None

    async def test_failed_merged_edit_is_consistency_fault(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: Deleting the record without the merged render would freeze a stale status
        What: Tests that a failed merged edit keeps the record and a retry retires it
        How: Fails the edit once, then clears the failure and reconciles again
        """
        pull_requests.update(ACME_WIDGETS_42, merged=True)
        chat.edit_errors[record.message_id] = TransientRemoteError("503")

        with pytest.raises(ConsistencyFault):
            await reconciler.reconcile(record)
        assert await store.get(record.id) is not None

        del chat.edit_errors[record.message_id]
        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.RETIRED
        assert await store.get(record.id) is None
        assert embed_field(chat.messages[record.message_id], "Status") == (
            PrStatus.MERGED.label
        )

    async def test_failed_merged_retirement_is_consistency_fault(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A record surviving its merged render must be retried, not lost silently
        What: Tests that a failed delete after the merged edit raises ConsistencyFault
              and that the retry only repeats the identical merged render
        How: Fails RecordStore.delete once, then reconciles again
        """
        pull_requests.update(ACME_WIDGETS_42, merged=True)
        failure = OperationalError("DELETE FROM ptal_records", {}, Exception("locked"))

        with (
            patch.object(store, "delete", AsyncMock(side_effect=failure)),
            pytest.raises(ConsistencyFault, match="not removed"),
        ):
            await reconciler.reconcile(record)
        assert await store.get(record.id) is not None

        outcome = await reconciler.reconcile(record)

        assert outcome.action is ReconcileAction.RETIRED
        assert await store.get(record.id) is None
        first, second = chat.edits_for(record.message_id)
        assert first == second
        assert embed_field(second, "Status") == PrStatus.MERGED.label

    async def test_hung_record_read_is_transient(
        self,
        store: RecordStore,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A stuck database call must not hold the message lock forever
        What: Tests that the record re-read is bounded by the remote timeout
        How: Replaces RecordStore.get with a coroutine that never finishes in time
        """

        async def hang(record_id: Any) -> None:
            await asyncio.sleep(1.0)

        reconciler = Reconciler(store, pull_requests, chat, remote_timeout=0.05)

        with (
            patch.object(store, "get", hang),
            pytest.raises(TransientReconcileError, match="read record"),
        ):
            await reconciler.reconcile(record)

        assert chat.edits_for(record.message_id) == []
        assert await store.get(record.id) is not None

    async def test_unexpected_error_propagates(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        pull_requests: FakePullRequestSource,
    ) -> None:
        pull_requests.pull_errors[ACME_KEY] = RuntimeError("bug")

        with pytest.raises(RuntimeError, match="bug"):
            await reconciler.reconcile(record)

    async def test_requester_is_rendered_as_author(
        self,
        reconciler: Reconciler,
        store: RecordStore,
        chat: FakeChatSurface,
    ) -> None:
        message_id = await chat.post_message(CHANNEL_ID, {"content": "placeholder"})
        record_id = await store.create(
            channel_id=CHANNEL_ID,
            message_id=message_id,
            owner="acme",
            repository="widgets",
            pr_number=42,
            description="fix memory leak",
            requester=Requester("321", "Ada"),
        )
        stored = await store.get(record_id)
        assert stored is not None

        await reconciler.reconcile(stored)

        assert chat.messages[message_id]["embeds"][0]["author"] == {"name": "Ada"}


class SlowFirstFetch(FakePullRequestSource):
    """Holds the first pull request fetch until released, returning the state
    captured when that fetch started."""

    def __init__(self) -> None:
        super().__init__()
        self.first_started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_pull_request(
        self, owner: str, repository: str, pr_number: int
    ) -> dict[str, Any]:
        if self.fetch_count == 0:
            self.fetch_count += 1
            snapshot = copy.deepcopy(self.pulls[(owner, repository, pr_number)])
            self.first_started.set()
            await self.release.wait()
            return snapshot
        return await super().fetch_pull_request(owner, repository, pr_number)


class TestConcurrentReconcile:
    """Tests for serialization of reconciliations of the same record."""

    async def test_same_record_is_serialized(
        self, store: RecordStore, record: PtalRecord, chat: FakeChatSurface
    ) -> None:
        """
        Why: Interleaved edits could leave an older status visible last
        What: Tests that the reconciliation started later edits last
        How: Blocks the first fetch, changes the PR, starts a second
             reconciliation, and checks it waits for the first
        """
        source = SlowFirstFetch()
        source.add(ACME_WIDGETS_42, make_pull_request(42))
        reconciler = Reconciler(store, source, chat)

        first = asyncio.create_task(reconciler.reconcile(record))
        await source.first_started.wait()

        source.add_review(ACME_WIDGETS_42, make_review("alice", "APPROVED"))
        second = asyncio.create_task(reconciler.reconcile(record))
        await asyncio.sleep(0.05)

        assert not second.done()
        assert source.fetch_count == 1
        assert reconciler.locks.is_locked(record.message_id)

        source.release.set()
        first_outcome, second_outcome = await asyncio.gather(first, second)

        edits = chat.edits_for(record.message_id)
        assert len(edits) == 2
        assert embed_field(edits[-1], "Status") == PrStatus.APPROVED.label
        assert second_outcome.status is PrStatus.APPROVED
        assert embed_field(chat.messages[record.message_id], "Status") == (
            PrStatus.APPROVED.label
        )
        assert first_outcome.action is ReconcileAction.UPDATED
        assert len(reconciler.locks) == 0

    async def test_racing_merge_retires_once(
        self,
        reconciler: Reconciler,
        record: PtalRecord,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        pull_requests.update(ACME_WIDGETS_42, merged=True)

        outcomes = await asyncio.gather(
            reconciler.reconcile(record), reconciler.reconcile(record)
        )

        assert sorted(o.action.value for o in outcomes) == ["retired", "skipped"]
        assert len(chat.edits_for(record.message_id)) == 1
        assert await store.get(record.id) is None


class TestReconcileIsolated:
    """Tests for reconcile_isolated failure isolation."""

    async def test_failures_do_not_stop_other_records(
        self,
        reconciler: Reconciler,
        store: RecordStore,
        pull_requests: FakePullRequestSource,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: One broken PR must not stall every other announcement
        What: Tests that transient and unexpected failures are collected per record
        How: Reconciles three records of which two fail differently
        """
        records = []
        for number in (42, 43, 44):
            if number != 42:
                pull_requests.pulls[("acme", "widgets", number)] = make_pull_request(
                    number
                )
            message_id = await chat.post_message(CHANNEL_ID, {"content": "x"})
            record_id = await store.create(
                channel_id=CHANNEL_ID,
                message_id=message_id,
                owner="acme",
                repository="widgets",
                pr_number=number,
                description=f"PR {number}",
            )
            stored = await store.get(record_id)
            assert stored is not None
            records.append(stored)

        pull_requests.pull_errors[("acme", "widgets", 43)] = TransientRemoteError(
            "timeout"
        )
        pull_requests.pull_errors[("acme", "widgets", 44)] = RuntimeError("bug")

        batch = await reconcile_isolated(reconciler, records, max_concurrency=2)

        assert batch.total == 3
        assert batch.count(ReconcileAction.UPDATED) == 1
        assert batch.outcomes[0].record_id == records[0].id
        failures = {f.record_id: f for f in batch.failures}
        assert failures[records[1].id].transient is True
        assert failures[records[2].id].transient is False
        assert "bug" in failures[records[2].id].error
        assert await store.count() == 3

    async def test_empty_batch(self, reconciler: Reconciler) -> None:
        batch = await reconcile_isolated(reconciler, [], max_concurrency=5)

        assert batch.total == 0
