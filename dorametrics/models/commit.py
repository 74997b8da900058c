"""commits table."""

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from dorametrics.core.database import Base, TimestampMixin


class Commit(TimestampMixin, Base):
    __tablename__ = "commits"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    team_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False
    )
    repo_name: Mapped[str] = mapped_column(Text, nullable=False)
    sha: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    author: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    committed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # PR linkage: number parsed from the message, timestamps copied once the PR merges
    pr_number: Mapped[Optional[int]] = mapped_column(Integer)
    pr_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    pr_merged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index("idx_commits_team", "team_id"),
        Index("idx_commits_repo_pr", "repo_name", "pr_number"),
    )
