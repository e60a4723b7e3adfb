"""PtalRecord SQLAlchemy model."""

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel


class PtalRecord(BaseModel):
    """Link between a rendered PTAL announcement and the pull request it reports on.

    A record owns exactly one chat message. The PR identity and description
    are written once at creation and never updated afterwards.
    """

    __tablename__ = "ptal_records"

    # Rendered notification surface
    channel_id: Mapped[str] = mapped_column(String(32), nullable=False)
    message_id: Mapped[str] = mapped_column(String(32), nullable=False)
    guild_id: Mapped[str | None] = mapped_column(String(32), nullable=True)

    # Tracked pull request
    owner: Mapped[str] = mapped_column(String(100), nullable=False)
    repository: Mapped[str] = mapped_column(String(100), nullable=False)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    # Who asked for the announcement (embed author)
    requester_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    requester_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    requester_avatar_url: Mapped[str | None] = mapped_column(
        String(500), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("message_id", name="uq_ptal_records_message_id"),
        Index("ix_ptal_records_pr_identity", "owner", "repository", "pr_number"),
    )

    def __repr__(self) -> str:
        """Return string representation."""
        return (
            f"<PtalRecord(id={self.id}, message_id={self.message_id}, "
            f"pr={self.owner}/{self.repository}#{self.pr_number})>"
        )

    @property
    def pr_url(self) -> str:
        """Web URL of the tracked pull request."""
        return (
            f"https://github.com/{self.owner}/{self.repository}/pull/{self.pr_number}"
        )
