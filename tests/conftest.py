"""Shared fakes for the deployer tests."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from gitops_deployer.cd.params import CreateClusterParams, DeployClusterParams
from gitops_deployer.common.errors import NotFoundError, RESOURCE_IN_K8S
from gitops_deployer.common.models import (
    Application,
    Cluster,
    ClusterStatus,
    PipelineRun,
    PipelineStatus,
    RegionEntity,
    TemplateRelease,
)
from gitops_deployer.gitrepo.cluster_repo import EnvValue, RepoInfo
from gitops_deployer.kube.selectors import labels_match
from gitops_deployer.workload.models import GroupVersionResource


def make_rollout(
    *,
    name: str = "web",
    namespace: str = "default",
    replicas: Optional[int] = 4,
    steps: Optional[List[Dict[str, Any]]] = None,
    status: Optional[Dict[str, Any]] = None,
    paused: bool = False,
    image: str = "registry.local/web:1",
    annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Unstructured Argo Rollout as returned by the API server."""
    spec: Dict[str, Any] = {
        "paused": paused,
        "selector": {"matchLabels": {"app": name}},
        "template": {
            "metadata": {"labels": {"app": name}, "annotations": dict(annotations or {})},
            "spec": {"containers": [{"name": "web", "image": image, "ports": [{"containerPort": 8080}]}]},
        },
    }
    if replicas is not None:
        spec["replicas"] = replicas
    if steps is not None:
        spec["strategy"] = {"canary": {"steps": steps}}
    return {
        "apiVersion": "argoproj.io/v1alpha1",
        "kind": "Rollout",
        "metadata": {"name": name, "namespace": namespace, "resourceVersion": "100"},
        "spec": spec,
        "status": {} if status is None else status,
    }


def make_pod(
    name: str,
    *,
    app: str = "web",
    namespace: str = "default",
    image: str = "registry.local/web:1",
    phase: str = "Running",
    annotations: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Pod as created by the rollout controller, with server-side defaults filled in."""
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {"app": app, "rollouts-pod-template-hash": "5d4f"},
            "annotations": dict(annotations or {}),
        },
        "spec": {
            "nodeName": "node-1",
            "restartPolicy": "Always",
            "containers": [
                {
                    "name": "web",
                    "image": image,
                    "ports": [{"containerPort": 8080, "protocol": "TCP"}],
                    "terminationMessagePath": "/dev/termination-log",
                    "imagePullPolicy": "IfNotPresent",
                }
            ],
        },
        "status": {"phase": phase},
    }


class FakeKube:
    """In-memory stand-in for KubeClient."""

    def __init__(self) -> None:
        self.objects: Dict[Tuple[str, str, str], Dict[str, Any]] = {}
        self.pods: List[Dict[str, Any]] = []
        self.get_errors: Dict[Tuple[str, str, str], Exception] = {}
        self.list_error: Optional[Exception] = None
        self.writes: List[Tuple[str, GroupVersionResource, Dict[str, Any]]] = []

    def add(self, resource: str, obj: Dict[str, Any]) -> None:
        metadata = obj["metadata"]
        self.objects[(resource, metadata["namespace"], metadata["name"])] = obj

    def get(self, gvr: GroupVersionResource, namespace: str, name: str) -> Dict[str, Any]:
        key = (gvr.resource, namespace, name)
        if key in self.get_errors:
            raise self.get_errors[key]
        if key not in self.objects:
            raise NotFoundError(f"{gvr} {namespace}/{name} not found", resource=RESOURCE_IN_K8S)
        return copy.deepcopy(self.objects[key])

    def list_pods(self, namespace: str, labels: Optional[Dict[str, str]] = None) -> List[Dict[str, Any]]:
        if self.list_error is not None:
            raise self.list_error
        return [
            copy.deepcopy(pod)
            for pod in self.pods
            if pod["metadata"]["namespace"] == namespace and labels_match(labels, pod["metadata"]["labels"])
        ]

    def replace(self, gvr: GroupVersionResource, obj: Dict[str, Any]) -> Dict[str, Any]:
        return self._write("replace", gvr, obj)

    def replace_status(self, gvr: GroupVersionResource, obj: Dict[str, Any]) -> Dict[str, Any]:
        return self._write("replace_status", gvr, obj)

    def _write(self, kind: str, gvr: GroupVersionResource, obj: Dict[str, Any]) -> Dict[str, Any]:
        stored = copy.deepcopy(obj)
        version = int(stored["metadata"].get("resourceVersion") or 0) + 1
        stored["metadata"]["resourceVersion"] = str(version)
        self.writes.append((kind, gvr, copy.deepcopy(obj)))
        self.add(gvr.resource, stored)
        return copy.deepcopy(stored)


class CallLog:
    """Ordered record of calls across all pipeline collaborators."""

    def __init__(self) -> None:
        self.calls: List[Tuple[Any, ...]] = []

    def record(self, *call: Any) -> None:
        self.calls.append(call)

    def names(self) -> List[str]:
        return [call[0] for call in self.calls]


class FakePipelineRuns:
    def __init__(self, log: CallLog, runs: Dict[int, PipelineRun]) -> None:
        self.log = log
        self.runs = runs
        self.fail_status: Optional[PipelineStatus] = None

    def get_by_id(self, pipelinerun_id: int) -> Optional[PipelineRun]:
        self.log.record("get_pipelinerun", pipelinerun_id)
        run = self.runs.get(pipelinerun_id)
        return copy.deepcopy(run) if run else None

    def update_config_commit_by_id(self, pipelinerun_id: int, commit: str) -> None:
        self.log.record("update_config_commit", commit)
        self.runs[pipelinerun_id].config_commit = commit

    def update_status_by_id(self, pipelinerun_id: int, status: PipelineStatus, revision: str) -> None:
        if status == self.fail_status:
            raise RuntimeError(f"database unavailable while writing {status.value}")
        self.log.record("update_status", status, revision)
        self.runs[pipelinerun_id].status = status


class FakeClusters:
    def __init__(self, log: CallLog, clusters: Dict[int, Cluster]) -> None:
        self.log = log
        self.clusters = clusters

    def get_by_id(self, cluster_id: int) -> Optional[Cluster]:
        cluster = self.clusters.get(cluster_id)
        return copy.deepcopy(cluster) if cluster else None

    def update_by_id(self, cluster_id: int, cluster: Cluster) -> Cluster:
        self.log.record("update_cluster", cluster.status)
        self.clusters[cluster_id] = copy.deepcopy(cluster)
        return cluster


class FakeApplications:
    def __init__(self, applications: Dict[int, Application]) -> None:
        self.applications = applications

    def get_by_id(self, application_id: int) -> Optional[Application]:
        return self.applications.get(application_id)


class FakeTemplateReleases:
    def __init__(self, releases: Dict[Tuple[str, str], TemplateRelease]) -> None:
        self.releases = releases

    def get_by_template_name_and_release(self, template: str, release: str) -> Optional[TemplateRelease]:
        return self.releases.get((template, release))


class FakeRegions:
    def __init__(self, regions: Dict[str, RegionEntity]) -> None:
        self.regions = regions

    def get_region_entity(self, region_name: str) -> Optional[RegionEntity]:
        return self.regions.get(region_name)


class FakeGitRepo:
    def __init__(self, log: CallLog) -> None:
        self.log = log
        self.errors: Dict[str, Exception] = {}
        self.commit = "c0ffee"
        self.revision = "m3rg3d"

    def _maybe_fail(self, op: str) -> None:
        if op in self.errors:
            raise self.errors[op]

    def update_pipeline_output(self, application: str, cluster: str, chart: str, output: Any) -> str:
        self._maybe_fail("update_pipeline_output")
        self.log.record("update_pipeline_output", application, cluster, chart, output)
        return self.commit

    def merge_branch(self, application: str, cluster: str, pipelinerun_id: int) -> str:
        self._maybe_fail("merge_branch")
        self.log.record("merge_branch", application, cluster, pipelinerun_id)
        return self.revision

    def get_env_value(self, application: str, cluster: str, chart: str) -> EnvValue:
        self._maybe_fail("get_env_value")
        return EnvValue(environment="test", region="hz", namespace="shop-test", base_registry="registry.local")

    def get_repo_info(self, application: str, cluster: str) -> RepoInfo:
        self._maybe_fail("get_repo_info")
        return RepoInfo(
            git_repo_url=f"https://git.local/{application}/{cluster}.git",
            value_files=["application.yaml", "system/env.yaml"],
        )


class FakeCD:
    def __init__(self, log: CallLog) -> None:
        self.log = log
        self.errors: Dict[str, Exception] = {}
        self.created: List[CreateClusterParams] = []
        self.deployed: List[DeployClusterParams] = []

    def create_cluster(self, params: CreateClusterParams) -> None:
        if "create_cluster" in self.errors:
            raise self.errors["create_cluster"]
        self.log.record("create_cluster", params.cluster)
        self.created.append(params)

    def deploy_cluster(self, params: DeployClusterParams) -> None:
        if "deploy_cluster" in self.errors:
            raise self.errors["deploy_cluster"]
        self.log.record("deploy_cluster", params.cluster, params.revision)
        self.deployed.append(params)


class PipelineWorld:
    """One application with one cluster and everything a deploy reads."""

    def __init__(self, *, cluster_status: ClusterStatus = ClusterStatus.EMPTY) -> None:
        self.log = CallLog()
        self.pipelineruns = FakePipelineRuns(self.log, {7: PipelineRun(id=7, cluster_id=1)})
        self.clusters = FakeClusters(
            self.log,
            {
                1: Cluster(
                    id=1,
                    application_id=3,
                    name="shop-test",
                    environment_name="test",
                    region_name="hz",
                    template="javaapp",
                    template_release="v1.2.0",
                    status=cluster_status,
                )
            },
        )
        self.applications = FakeApplications({3: Application(id=3, name="shop")})
        self.template_releases = FakeTemplateReleases(
            {("javaapp", "v1.2.0"): TemplateRelease(template_name="javaapp", name="v1.2.0", chart_name="javaapp")}
        )
        self.regions = FakeRegions({"hz": RegionEntity(name="hz", server="https://k8s-hz.local:6443")})
        self.git_repo = FakeGitRepo(self.log)
        self.cd = FakeCD(self.log)

    def deployer_kwargs(self) -> Dict[str, Any]:
        return {
            "pipelineruns": self.pipelineruns,
            "clusters": self.clusters,
            "applications": self.applications,
            "template_releases": self.template_releases,
            "regions": self.regions,
            "git_repo": self.git_repo,
            "cd": self.cd,
        }


@pytest.fixture
def kube() -> FakeKube:
    return FakeKube()


@pytest.fixture
def world() -> PipelineWorld:
    return PipelineWorld()
