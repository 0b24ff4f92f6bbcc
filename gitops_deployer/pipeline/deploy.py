"""Deploy state machine: drive one pipelinerun from created to ok."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, TypeVar

from ..cd.backend import CDBackend
from ..cd.params import CreateClusterParams, DeployClusterParams
from ..common.errors import (
    RESOURCE_APPLICATION,
    RESOURCE_CLUSTER,
    RESOURCE_PIPELINERUN,
    RESOURCE_REGION,
    RESOURCE_TEMPLATE_RELEASE,
    DeployerError,
    NotFoundError,
)
from ..common.models import Cluster, ClusterStatus, PipelineRun, PipelineStatus
from ..gitrepo.cluster_repo import ClusterGitRepo
from .locks import ClusterLocks
from .managers import (
    ApplicationManager,
    ClusterManager,
    PipelineRunManager,
    RegionManager,
    TemplateReleaseManager,
)

T = TypeVar("T")


@dataclass(slots=True)
class DeployResult:
    """Outcome of a successful deploy."""

    pipelinerun_id: int
    commit: str
    revision: str


class PipelineRunDeployer:
    """
    Runs the deploy stages of one pipelinerun in order.

    Stages:
        1. load the pipelinerun and check it belongs to the cluster
        2. load the cluster, its application and template release
        3. commit the pipeline output to the cluster's working branch
        4. persist the config commit, status committed
        5. merge the working branch into the stable branch
        6. status merged, the merge revision becomes the commit reference
        7. resolve the region entity, namespace and repo info
        8. create or update the cluster in the CD backend
        9. reset a freed cluster to active
        10. deploy the merged revision
        11. status ok

    Every status change is persisted as soon as its stage completes. A failure
    aborts the run with the operation name prepended to the error and leaves
    the status of the last completed stage in place; the caller decides whether
    to retry or mark the run failed. A retry re-enters at stage 1 and never
    moves the persisted status backward.
    """

    def __init__(
        self,
        *,
        pipelineruns: PipelineRunManager,
        clusters: ClusterManager,
        applications: ApplicationManager,
        template_releases: TemplateReleaseManager,
        regions: RegionManager,
        git_repo: ClusterGitRepo,
        cd: CDBackend,
        locks: Optional[ClusterLocks] = None,
        lock_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.pipelineruns = pipelineruns
        self.clusters = clusters
        self.applications = applications
        self.template_releases = template_releases
        self.regions = regions
        self.git_repo = git_repo
        self.cd = cd
        self.locks = locks
        self.lock_timeout = lock_timeout
        self.logger = logger or logging.getLogger(__name__)

    def deploy(self, cluster_id: int, pipelinerun_id: int, output: Any) -> DeployResult:
        """Deploy ``output`` to the cluster as pipelinerun ``pipelinerun_id``."""
        if self.locks is None:
            return self._deploy(cluster_id, pipelinerun_id, output)
        with self.locks.hold(cluster_id, self.lock_timeout):
            return self._deploy(cluster_id, pipelinerun_id, output)

    def _deploy(self, cluster_id: int, pipelinerun_id: int, output: Any) -> DeployResult:
        pr = self._load_pipelinerun(cluster_id, pipelinerun_id)
        persisted = pr.status

        cluster = self._require(
            self._stage("get cluster", self.clusters.get_by_id, cluster_id),
            f"cluster {cluster_id} not found",
            RESOURCE_CLUSTER,
        )
        application = self._require(
            self._stage("get application", self.applications.get_by_id, cluster.application_id),
            f"application {cluster.application_id} not found",
            RESOURCE_APPLICATION,
        )
        template_release = self._require(
            self._stage(
                "get template release",
                self.template_releases.get_by_template_name_and_release,
                cluster.template,
                cluster.template_release,
            ),
            f"template release {cluster.template}-{cluster.template_release} not found",
            RESOURCE_TEMPLATE_RELEASE,
        )

        commit = self._stage(
            "update pipeline output",
            self.git_repo.update_pipeline_output,
            application.name,
            cluster.name,
            template_release.chart_name,
            output,
        )
        self.logger.info("Pipelinerun %s: committed config %s to cluster %s", pr.id, commit, cluster.name)
        self._stage("update config commit", self.pipelineruns.update_config_commit_by_id, pr.id, commit)
        persisted = self._advance(pr.id, persisted, PipelineStatus.COMMITTED, commit)

        revision = self._stage("merge branch", self.git_repo.merge_branch, application.name, cluster.name, pr.id)
        self.logger.info("Pipelinerun %s: merged cluster %s at %s", pr.id, cluster.name, revision)
        persisted = self._advance(pr.id, persisted, PipelineStatus.MERGED, revision)

        region_entity = self._require(
            self._stage("get region entity", self.regions.get_region_entity, cluster.region_name),
            f"region {cluster.region_name} not found",
            RESOURCE_REGION,
        )
        env_value = self._stage(
            "get env value",
            self.git_repo.get_env_value,
            application.name,
            cluster.name,
            template_release.chart_name,
        )
        repo_info = self._stage("get repo info", self.git_repo.get_repo_info, application.name, cluster.name)

        self._stage(
            "create cluster",
            self.cd.create_cluster,
            CreateClusterParams(
                environment=cluster.environment_name,
                cluster=cluster.name,
                git_repo_url=repo_info.git_repo_url,
                region_entity=region_entity,
                namespace=env_value.namespace,
                value_files=list(repo_info.value_files),
            ),
        )
        self.logger.info("Pipelinerun %s: cluster %s present in CD backend", pr.id, cluster.name)

        if cluster.status == ClusterStatus.FREED:
            self._reactivate(cluster)

        self._stage(
            "deploy cluster",
            self.cd.deploy_cluster,
            DeployClusterParams(environment=cluster.environment_name, cluster=cluster.name, revision=revision),
        )
        self.logger.info("Pipelinerun %s: deploy of %s triggered at %s", pr.id, cluster.name, revision)
        self._advance(pr.id, persisted, PipelineStatus.OK, revision)

        return DeployResult(pipelinerun_id=pr.id, commit=commit, revision=revision)

    def _load_pipelinerun(self, cluster_id: int, pipelinerun_id: int) -> PipelineRun:
        pr = self._require(
            self._stage("get pipelinerun", self.pipelineruns.get_by_id, pipelinerun_id),
            f"pipelinerun {pipelinerun_id} not found",
            RESOURCE_PIPELINERUN,
        )
        if pr.cluster_id != cluster_id:
            raise NotFoundError(
                f"pipelinerun {pipelinerun_id} not found in cluster {cluster_id}",
                resource=RESOURCE_PIPELINERUN,
            )
        return pr

    def _reactivate(self, cluster: Cluster) -> None:
        self._stage("update cluster", self.clusters.update_by_id, cluster.id, replace(cluster, status=ClusterStatus.EMPTY))
        self.logger.info("Cluster %s was freed, marked active again", cluster.name)

    def _advance(
        self,
        pipelinerun_id: int,
        persisted: PipelineStatus,
        target: PipelineStatus,
        revision: str,
    ) -> PipelineStatus:
        """Persist ``target`` unless the stored status is already further along."""
        if persisted.rank is not None and target.rank is not None and target.rank < persisted.rank:
            self.logger.info(
                "Pipelinerun %s already %s, not moving status back to %s",
                pipelinerun_id,
                persisted.value,
                target.value,
            )
            return persisted
        try:
            self.pipelineruns.update_status_by_id(pipelinerun_id, target, revision)
        except DeployerError as exc:
            self.logger.error("Failed to set pipelinerun %s status to %s: %s", pipelinerun_id, target.value, exc)
            raise exc.with_context("update status") from exc
        except Exception as exc:
            self.logger.error("Failed to set pipelinerun %s status to %s: %s", pipelinerun_id, target.value, exc)
            raise
        self.logger.info("Pipelinerun %s status -> %s", pipelinerun_id, target.value)
        return target

    @staticmethod
    def _stage(op: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return func(*args)
        except DeployerError as exc:
            raise exc.with_context(op) from exc

    @staticmethod
    def _require(value: Optional[T], message: str, resource: str) -> T:
        if value is None:
            raise NotFoundError(message, resource=resource)
        return value
