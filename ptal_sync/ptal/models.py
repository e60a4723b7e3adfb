"""Value types shared by the synchronization engine components."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .status import PrStatus


@dataclass(frozen=True)
class PullRequestIdentity:
    """Owner, repository and number of a GitHub pull request."""

    owner: str
    repository: str
    pr_number: int

    @property
    def url(self) -> str:
        return (
            f"https://github.com/{self.owner}/{self.repository}/pull/{self.pr_number}"
        )

    @property
    def display_name(self) -> str:
        return f"{self.owner}/{self.repository}#{self.pr_number}"

    def __str__(self) -> str:
        return self.display_name


@dataclass(frozen=True)
class Requester:
    """Chat user who asked for an announcement."""

    id: str | None
    name: str | None
    avatar_url: str | None = None


@dataclass(frozen=True)
class DisplayPayload:
    """Complete chat message body for an announcement.

    Rendering is deterministic, so two payloads built from the same inputs
    compare equal.
    """

    content: str
    embeds: list[dict[str, Any]] = field(default_factory=list)
    components: list[dict[str, Any]] = field(default_factory=list)
    allowed_mentions: dict[str, Any] = field(default_factory=dict)

    def to_message_json(self) -> dict[str, Any]:
        """Body accepted by the Discord create and edit message endpoints."""
        return {
            "content": self.content,
            "embeds": self.embeds,
            "components": self.components,
            "allowed_mentions": self.allowed_mentions,
        }


class ReconcileAction(str, Enum):
    """What a reconciliation did to its record."""

    UPDATED = "updated"  # message edited, record kept
    RETIRED = "retired"  # merged render applied, record deleted
    ORPHANED = "orphaned"  # PR or message gone, record deleted
    SKIPPED = "skipped"  # record already removed by a racing reconciliation


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of reconciling one record."""

    record_id: uuid.UUID
    action: ReconcileAction
    status: PrStatus | None = None
    payload: DisplayPayload | None = None


@dataclass(frozen=True)
class ReconcileFailure:
    """A reconciliation that raised; the record was left in place."""

    record_id: uuid.UUID
    error: str
    transient: bool = True


@dataclass
class ReconcileBatch:
    """Outcomes and failures of reconciling several records independently."""

    outcomes: list[ReconcileOutcome] = field(default_factory=list)
    failures: list[ReconcileFailure] = field(default_factory=list)

    def count(self, action: ReconcileAction) -> int:
        """Number of outcomes with the given action."""
        return sum(1 for outcome in self.outcomes if outcome.action is action)

    @property
    def total(self) -> int:
        return len(self.outcomes) + len(self.failures)
