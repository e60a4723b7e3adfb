"""
Unit tests for event normalization and routing.

Why: Webhook events are the fast path to convergence; they must reach every
     record of the named pull request and nothing else.

What: Tests PullRequestEvent.from_webhook normalization and EventRouter
      matching, ignoring and failure isolation.

How: Builds webhook bodies with the fixture factories and routes them against
     a real RecordStore with in-memory remote fakes.
"""

import pytest

from ptal_sync.models import PtalRecord
from ptal_sync.ptal import (
    EventRouter,
    PrStatus,
    PullRequestEvent,
    ReconcileAction,
    Reconciler,
    RecordStore,
    TransientRemoteError,
    ValidationError,
)
from tests.fixtures.ptal import (
    CHANNEL_ID,
    FakeChatSurface,
    embed_field,
    make_webhook_payload,
)


class TestPullRequestEvent:
    """Tests for PullRequestEvent.from_webhook."""

    def test_pull_request_event(self) -> None:
        event = PullRequestEvent.from_webhook(
            "pull_request", make_webhook_payload(), delivery_id="d-1"
        )

        assert event is not None
        assert event.kind == "pull_request"
        assert (event.owner, event.repository, event.pr_number) == (
            "acme",
            "widgets",
            42,
        )
        assert event.delivery_id == "d-1"
        assert event.raw_pull_request is not None
        assert str(event.identity) == "acme/widgets#42"

    @pytest.mark.parametrize(
        "kind", ["pull_request_review", "pull_request_review_comment"]
    )
    def test_review_events(self, kind: str) -> None:
        payload = make_webhook_payload(action="submitted")
        del payload["number"]

        event = PullRequestEvent.from_webhook(kind, payload)

        assert event is not None
        assert event.kind == kind
        assert event.pr_number == 42

    def test_number_falls_back_to_top_level(self) -> None:
        payload = make_webhook_payload(number=7)
        del payload["pull_request"]

        event = PullRequestEvent.from_webhook("pull_request", payload)

        assert event is not None
        assert event.pr_number == 7
        assert event.raw_pull_request is None

    @pytest.mark.parametrize("kind", ["push", "issues", "check_run", "ping"])
    def test_unsupported_kinds_are_not_routed(self, kind: str) -> None:
        assert PullRequestEvent.from_webhook(kind, make_webhook_payload()) is None

    def test_missing_identity_is_rejected(self) -> None:
        payload = make_webhook_payload()
        del payload["repository"]

        with pytest.raises(ValidationError):
            PullRequestEvent.from_webhook("pull_request", payload, delivery_id="d-2")

    def test_raw_payload_does_not_affect_equality(self) -> None:
        first = PullRequestEvent("pull_request", "acme", "widgets", 42, {"a": 1})
        second = PullRequestEvent("pull_request", "acme", "widgets", 42, {"b": 2})

        assert first == second


class TestEventRouter:
    """Tests for EventRouter.handle."""

    @pytest.fixture
    def router(self, store: RecordStore, reconciler: Reconciler) -> EventRouter:
        return EventRouter(store, reconciler, max_concurrency=4)

    async def test_no_matching_records(self, router: EventRouter) -> None:
        event = PullRequestEvent("pull_request", "acme", "gadgets", 1)

        result = await router.handle(event)

        assert result.matched == 0
        assert result.batch.total == 0
        assert not result.ignored

    async def test_unsupported_kind_is_ignored(
        self, router: EventRouter, record: PtalRecord, chat: FakeChatSurface
    ) -> None:
        event = PullRequestEvent("push", "acme", "widgets", 42)

        result = await router.handle(event)

        assert result.ignored
        assert chat.edits == []

    async def test_reconciles_every_matching_record(
        self,
        router: EventRouter,
        store: RecordStore,
        record: PtalRecord,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: The same PR may be announced in several channels
        What: Tests that one event reconciles every record for the PR
        How: Stores two records for acme/widgets#42 and routes one event
        """
        second_message = await chat.post_message("999", {"content": "x"})
        await store.create(
            channel_id="999",
            message_id=second_message,
            owner="acme",
            repository="widgets",
            pr_number=42,
            description="second channel",
        )

        result = await router.handle(
            PullRequestEvent("pull_request_review", "acme", "widgets", 42)
        )

        assert result.matched == 2
        assert result.batch.count(ReconcileAction.UPDATED) == 2
        assert result.failed == 0
        assert {message_id for message_id, _ in chat.edits} == {
            record.message_id,
            second_message,
        }
        for message_id in (record.message_id, second_message):
            assert embed_field(chat.messages[message_id], "Status") == (
                PrStatus.WAITING.label
            )

    async def test_failures_are_counted_not_raised(
        self,
        router: EventRouter,
        store: RecordStore,
        record: PtalRecord,
        chat: FakeChatSurface,
    ) -> None:
        """
        Why: A failing message must not stop the event for the other records
        What: Tests that a transient edit failure is counted and isolated
        How: Fails the edit of one of two records and routes an event
        """
        healthy_message = await chat.post_message(CHANNEL_ID, {"content": "x"})
        await store.create(
            channel_id=CHANNEL_ID,
            message_id=healthy_message,
            owner="acme",
            repository="widgets",
            pr_number=42,
            description="other",
        )
        chat.edit_errors[record.message_id] = TransientRemoteError("503")

        result = await router.handle(
            PullRequestEvent("pull_request", "acme", "widgets", 42)
        )

        assert result.matched == 2
        assert result.failed == 1
        assert result.batch.failures[0].record_id == record.id
        assert chat.edits_for(healthy_message)
        assert await store.get(record.id) is not None
