"""SQLAlchemy ORM models — one file per table."""

from dorametrics.models.commit import Commit
from dorametrics.models.deployment import Deployment
from dorametrics.models.dora_metric import DoraMetric
from dorametrics.models.pull_request import PullRequest
from dorametrics.models.team import Team

__all__ = [
    "Team",
    "Commit",
    "PullRequest",
    "Deployment",
    "DoraMetric",
]
