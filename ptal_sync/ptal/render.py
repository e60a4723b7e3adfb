"""Announcement rendering.

Turns a derived status and review list into the Discord message body. Every
function here is pure so the same pull request state always yields the same
payload.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .models import DisplayPayload, PullRequestIdentity, Requester
from .status import PrStatus, Review, ReviewDecision, dedupe_reviews, derive_status

DEFAULT_EMBED_COLOR = 0x5865F2

# Discord message and embed limits
MAX_CONTENT_LENGTH = 2000
MAX_TITLE_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024

NO_REVIEWS_TEXT = "*No reviews yet*"

REVIEW_EMOJI: dict[ReviewDecision, str] = {
    ReviewDecision.APPROVED: ":white_check_mark:",
    ReviewDecision.CHANGES_REQUESTED: ":no_entry_sign:",
    ReviewDecision.COMMENTED: ":speech_balloon:",
    ReviewDecision.UNKNOWN: ":question:",
}

# Discord component types and the link button style
ACTION_ROW = 1
BUTTON = 2
LINK_STYLE = 5


@dataclass(frozen=True)
class RenderSettings:
    """Presentation choices that are not part of the pull request state."""

    embed_color: int = DEFAULT_EMBED_COLOR
    announcement_roles: Mapping[str, str] = field(default_factory=dict)
    display_bot_reviews: bool = False

    def role_for(self, guild_id: str | None) -> str | None:
        """Role pinged by announcements in the given guild, if any."""
        if guild_id is None:
            return None
        return self.announcement_roles.get(guild_id)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def _review_line(review: Review) -> str:
    emoji = REVIEW_EMOJI[review.decision]
    return f"{emoji} [@{review.author}](https://github.com/{review.author})"


def _reviews_value(reviews: Sequence[Review]) -> str:
    if not reviews:
        return NO_REVIEWS_TEXT

    lines: list[str] = []
    length = 0
    for index, review in enumerate(reviews):
        line = _review_line(review)
        # Leave room for the "and N more" line
        if length + len(line) + 1 > MAX_FIELD_VALUE_LENGTH - 20:
            lines.append(f"*and {len(reviews) - index} more*")
            break
        lines.append(line)
        length += len(line) + 1
    return "\n".join(lines)


def render_announcement(
    status: PrStatus,
    title: str,
    reviews: Sequence[Review],
    description: str,
    identity: PullRequestIdentity,
    requester: Requester | None = None,
    role_id: str | None = None,
    embed_color: int = DEFAULT_EMBED_COLOR,
    timestamp: str | None = None,
) -> DisplayPayload:
    """Build the message body for an announcement.

    Args:
        status: Derived pull request status
        title: Pull request title
        reviews: Reviews to list, already deduplicated
        description: Requester's description, repeated on every render
        identity: Pull request being announced
        requester: Embed author
        role_id: Role to ping, if the guild has one configured
        embed_color: Embed accent color
        timestamp: ISO 8601 time shown in the embed footer (PR ``updated_at``)

    Returns:
        The rendered payload
    """
    role_ping = f"<@&{role_id}>\n" if role_id else ""
    content = _truncate(
        f"{role_ping}# PTAL / Ready for Review\n\n{description}", MAX_CONTENT_LENGTH
    )

    embed: dict[str, Any] = {
        "title": _truncate(title, MAX_TITLE_LENGTH),
        "url": identity.url,
        "color": embed_color,
        "fields": [
            {
                "name": "Repository",
                "value": f"[{identity.display_name}]({identity.url})",
            },
            {"name": "Status", "value": status.label},
            {"name": "Reviews", "value": _reviews_value(reviews)},
        ],
    }
    if requester is not None and requester.name:
        author: dict[str, str] = {"name": requester.name}
        if requester.avatar_url:
            author["icon_url"] = requester.avatar_url
        embed["author"] = author
    if timestamp:
        embed["timestamp"] = timestamp

    components = [
        {
            "type": ACTION_ROW,
            "components": [
                {
                    "type": BUTTON,
                    "style": LINK_STYLE,
                    "label": "See on GitHub",
                    "url": identity.url,
                },
                {
                    "type": BUTTON,
                    "style": LINK_STYLE,
                    "label": "View Files",
                    "url": f"{identity.url}/files",
                    "emoji": {"name": "📂"},
                },
            ],
        }
    ]

    allowed_mentions: dict[str, Any] = {"parse": []}
    if role_id:
        allowed_mentions["roles"] = [role_id]

    return DisplayPayload(
        content=content,
        embeds=[embed],
        components=components,
        allowed_mentions=allowed_mentions,
    )


def compose_announcement(
    pr: Mapping[str, Any],
    raw_reviews: Sequence[Mapping[str, Any]],
    identity: PullRequestIdentity,
    description: str,
    requester: Requester | None,
    guild_id: str | None,
    settings: RenderSettings,
) -> tuple[PrStatus, DisplayPayload]:
    """Derive the status from fresh GitHub data and render it.

    Status always ignores bot reviews; the displayed list includes them only
    when ``settings.display_bot_reviews`` is set.
    """
    status_reviews = dedupe_reviews(raw_reviews)
    status = derive_status(pr, status_reviews)

    shown = (
        dedupe_reviews(raw_reviews, include_bots=True)
        if settings.display_bot_reviews
        else status_reviews
    )

    payload = render_announcement(
        status=status,
        title=pr.get("title") or identity.display_name,
        reviews=shown,
        description=description,
        identity=identity,
        requester=requester,
        role_id=settings.role_for(guild_id),
        embed_color=settings.embed_color,
        timestamp=pr.get("updated_at"),
    )
    return status, payload
