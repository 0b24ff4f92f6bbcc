"""Database manager contracts the deploy pipeline reads and writes through."""
from __future__ import annotations

from typing import Optional, Protocol

from ..common.models import (
    Application,
    Cluster,
    PipelineRun,
    PipelineStatus,
    RegionEntity,
    TemplateRelease,
)


class PipelineRunManager(Protocol):
    def get_by_id(self, pipelinerun_id: int) -> Optional[PipelineRun]:
        ...

    def update_config_commit_by_id(self, pipelinerun_id: int, commit: str) -> None:
        ...

    def update_status_by_id(self, pipelinerun_id: int, status: PipelineStatus, revision: str) -> None:
        ...


class ClusterManager(Protocol):
    def get_by_id(self, cluster_id: int) -> Optional[Cluster]:
        ...

    def update_by_id(self, cluster_id: int, cluster: Cluster) -> Cluster:
        ...


class ApplicationManager(Protocol):
    def get_by_id(self, application_id: int) -> Optional[Application]:
        ...


class TemplateReleaseManager(Protocol):
    def get_by_template_name_and_release(self, template: str, release: str) -> Optional[TemplateRelease]:
        ...


class RegionManager(Protocol):
    def get_region_entity(self, region_name: str) -> Optional[RegionEntity]:
        ...
