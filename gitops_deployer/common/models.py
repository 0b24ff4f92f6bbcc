"""Domain records read and written by the deploy pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class PipelineStatus(Enum):
    """Status of one pipelinerun."""
    CREATED = "created"
    COMMITTED = "committed"
    MERGED = "merged"
    OK = "ok"
    FAILED = "failed"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> Optional[int]:
        """Position on the forward path created -> committed -> merged -> ok, None off it."""
        return _FORWARD_PATH.get(self)


_FORWARD_PATH = {
    PipelineStatus.CREATED: 0,
    PipelineStatus.COMMITTED: 1,
    PipelineStatus.MERGED: 2,
    PipelineStatus.OK: 3,
}


class PipelineAction(Enum):
    """Kind of change a pipelinerun rolls out."""
    BUILD_DEPLOY = "builddeploy"
    DEPLOY = "deploy"
    RESTART = "restart"
    ROLLBACK = "rollback"


class ClusterStatus(Enum):
    """Lifecycle status of a cluster record. EMPTY means active."""
    EMPTY = ""
    CREATING = "creating"
    DELETING = "deleting"
    FREEING = "freeing"
    FREED = "freed"


@dataclass
class UserInfo:
    user_id: int
    user_name: str


@dataclass
class PipelineRun:
    """One deployment attempt as persisted in the database."""
    id: int
    cluster_id: int
    action: PipelineAction = PipelineAction.BUILD_DEPLOY
    status: PipelineStatus = PipelineStatus.CREATED
    title: str = ""
    description: str = ""
    # Build inputs, empty unless action is builddeploy
    git_url: str = ""
    git_branch: str = ""
    git_commit: str = ""
    image_url: str = ""
    # Config commit on the stable branch before this run, empty for restart
    last_config_commit: str = ""
    config_commit: str = ""
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    created_by: Optional[UserInfo] = None


@dataclass
class Cluster:
    id: int
    application_id: int
    name: str
    environment_name: str
    region_name: str
    template: str
    template_release: str
    status: ClusterStatus = ClusterStatus.EMPTY
    description: str = ""


@dataclass
class Application:
    id: int
    name: str


@dataclass
class TemplateRelease:
    """A released version of a deploy template and the chart it ships."""
    template_name: str
    name: str
    chart_name: str


@dataclass
class RegionEntity:
    """Infrastructure a cluster lands on: the Kubernetes API server of a region."""
    name: str
    server: str
    display_name: str = ""
    ingress_domain: str = ""
    metadata: dict = field(default_factory=dict)
