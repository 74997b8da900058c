"""CircleCI sync engine — deployment collection from pipelines and workflows."""

from dorametrics.engines.circleci_sync.circleci_client import CircleCIClient
from dorametrics.engines.circleci_sync.collector import (
    collect,
    duration_seconds,
    extract_environment,
    is_deploy_workflow,
    map_status,
    repo_from_slug,
)
from dorametrics.engines.circleci_sync.models import (
    CircleCISyncResult,
    CollectedDeployment,
    PipelineScan,
)
from dorametrics.engines.circleci_sync.runner import CircleCISyncRunner

__all__ = [
    "CircleCIClient",
    "CircleCISyncResult",
    "CircleCISyncRunner",
    "CollectedDeployment",
    "PipelineScan",
    "collect",
    "duration_seconds",
    "extract_environment",
    "is_deploy_workflow",
    "map_status",
    "repo_from_slug",
]
