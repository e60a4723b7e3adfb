"""Pull request status derivation and review deduplication.

Both functions are pure: they operate on GitHub REST payloads (plain dicts)
and never perform I/O.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

BOT_LOGIN_SUFFIX = "[bot]"


class PrStatus(str, Enum):
    """Canonical announcement status of a pull request."""

    DRAFT = "draft"
    WAITING = "waiting"
    APPROVED = "approved"
    CHANGES = "changes"
    MERGED = "merged"

    @property
    def label(self) -> str:
        """Human-facing label shown in the announcement."""
        return STATUS_LABELS[self]


STATUS_LABELS: dict[PrStatus, str] = {
    PrStatus.DRAFT: ":white_circle: Draft",
    PrStatus.WAITING: ":hourglass: Awaiting reviews",
    PrStatus.APPROVED: ":white_check_mark: Approved",
    PrStatus.CHANGES: ":no_entry_sign: Changes requested",
    PrStatus.MERGED: ":purple_circle: Merged",
}


class ReviewDecision(str, Enum):
    """Decision carried by a single review."""

    COMMENTED = "commented"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    UNKNOWN = "unknown"

    @classmethod
    def from_github(cls, state: str | None) -> "ReviewDecision":
        """Map a GitHub review ``state`` to a decision."""
        return _GITHUB_STATES.get((state or "").upper(), cls.UNKNOWN)


_GITHUB_STATES = {
    "COMMENTED": ReviewDecision.COMMENTED,
    "APPROVED": ReviewDecision.APPROVED,
    "CHANGES_REQUESTED": ReviewDecision.CHANGES_REQUESTED,
}


@dataclass(frozen=True)
class Review:
    """One reviewer's effective decision after deduplication."""

    author: str
    decision: ReviewDecision


def is_bot_review(raw_review: Mapping[str, Any]) -> bool:
    """Whether a raw review was submitted by a bot or automation account."""
    user = raw_review.get("user") or {}
    login = user.get("login") or ""
    return login.endswith(BOT_LOGIN_SUFFIX) or user.get("type") == "Bot"


def dedupe_reviews(
    raw_reviews: Iterable[Mapping[str, Any]], include_bots: bool = False
) -> list[Review]:
    """Reduce a chronological review list to one decision per reviewer.

    Entries without an author and dismissed reviews are skipped, as are bot
    reviews unless ``include_bots`` is set. A reviewer's latest entry wins;
    reviewers keep the position of their first surviving entry.

    Args:
        raw_reviews: GitHub review objects in chronological order
        include_bots: Keep reviews from bot accounts

    Returns:
        Deduplicated reviews in first-seen order
    """
    decisions: dict[str, ReviewDecision] = {}

    for raw in raw_reviews:
        login = (raw.get("user") or {}).get("login")
        if not login:
            continue
        if (raw.get("state") or "").upper() == "DISMISSED":
            continue
        if not include_bots and is_bot_review(raw):
            continue

        # Reassigning an existing key keeps its insertion position
        decisions[login] = ReviewDecision.from_github(raw.get("state"))

    return [Review(author, decision) for author, decision in decisions.items()]


def derive_status(pr: Mapping[str, Any], reviews: Sequence[Review]) -> PrStatus:
    """Derive the announcement status from a pull request and its reviews.

    Rules are evaluated in a fixed order and the first match wins. ``merged``
    is checked before the mergeability heuristics because GitHub often
    reports ``mergeable`` as null for merged pull requests.

    Args:
        pr: GitHub pull request object
        reviews: Deduplicated reviews without bot accounts

    Returns:
        The derived status
    """
    if pr.get("draft"):
        return PrStatus.DRAFT

    if pr.get("merged"):
        return PrStatus.MERGED

    # mergeable is null while GitHub is still computing it
    if (
        not pr.get("mergeable")
        or not reviews
        or pr.get("mergeable_state") == "blocked"
    ):
        return PrStatus.WAITING

    if any(r.decision is ReviewDecision.CHANGES_REQUESTED for r in reviews):
        return PrStatus.CHANGES

    if pr.get("mergeable"):
        return PrStatus.APPROVED

    return PrStatus.WAITING
