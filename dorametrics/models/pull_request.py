"""pull_requests table."""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from dorametrics.core.database import Base, TimestampMixin

PR_STATES = ("open", "closed", "merged")


class PullRequest(TimestampMixin, Base):
    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    repo_name: Mapped[str] = mapped_column(Text, nullable=False)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    author: Mapped[str] = mapped_column(Text, nullable=False)
    state: Mapped[str] = mapped_column(Text, nullable=False)

    # created_at doubles as the PR's own creation time on GitHub
    merged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    first_commit_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    base_branch: Mapped[Optional[str]] = mapped_column(Text)
    head_branch: Mapped[Optional[str]] = mapped_column(Text)
    commits_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))

    __table_args__ = (
        UniqueConstraint("repo_name", "pr_number", name="uq_pull_requests_repo_number"),
        CheckConstraint("state IN ('open', 'closed', 'merged')", name="state"),
        Index("idx_pull_requests_team", "team_id"),
    )
