"""Tests for the pipelinerun deploy state machine."""

from __future__ import annotations

import threading

import pytest

from gitops_deployer.common.errors import ConflictError, NotFoundError, UpstreamError
from gitops_deployer.common.models import ClusterStatus, PipelineRun, PipelineStatus
from gitops_deployer.pipeline import ClusterLocks, PipelineRunDeployer

from conftest import PipelineWorld

OUTPUT = {"image": "registry.local/shop:abc123"}


def make_deployer(world: PipelineWorld, **kwargs) -> PipelineRunDeployer:
    return PipelineRunDeployer(**world.deployer_kwargs(), **kwargs)


def test_successful_deploy_persists_stages_in_order(world: PipelineWorld) -> None:
    result = make_deployer(world).deploy(1, 7, OUTPUT)

    assert result.pipelinerun_id == 7
    assert result.commit == "c0ffee"
    assert result.revision == "m3rg3d"
    assert world.log.calls == [
        ("get_pipelinerun", 7),
        ("update_pipeline_output", "shop", "shop-test", "javaapp", OUTPUT),
        ("update_config_commit", "c0ffee"),
        ("update_status", PipelineStatus.COMMITTED, "c0ffee"),
        ("merge_branch", "shop", "shop-test", 7),
        ("update_status", PipelineStatus.MERGED, "m3rg3d"),
        ("create_cluster", "shop-test"),
        ("deploy_cluster", "shop-test", "m3rg3d"),
        ("update_status", PipelineStatus.OK, "m3rg3d"),
    ]
    assert world.pipelineruns.runs[7].status == PipelineStatus.OK
    assert world.pipelineruns.runs[7].config_commit == "c0ffee"


def test_create_cluster_receives_repo_region_and_namespace(world: PipelineWorld) -> None:
    make_deployer(world).deploy(1, 7, OUTPUT)

    params = world.cd.created[0]
    assert params.environment == "test"
    assert params.git_repo_url == "https://git.local/shop/shop-test.git"
    assert params.value_files == ["application.yaml", "system/env.yaml"]
    assert params.region_entity.server == "https://k8s-hz.local:6443"
    assert params.namespace == "shop-test"
    assert world.cd.deployed[0].environment == "test"


def test_freed_cluster_is_reactivated_before_deploy() -> None:
    world = PipelineWorld(cluster_status=ClusterStatus.FREED)

    make_deployer(world).deploy(1, 7, OUTPUT)

    names = world.log.names()
    assert names.index("create_cluster") < names.index("update_cluster") < names.index("deploy_cluster")
    assert ("update_cluster", ClusterStatus.EMPTY) in world.log.calls
    assert world.clusters.clusters[1].status == ClusterStatus.EMPTY


def test_active_cluster_is_not_rewritten(world: PipelineWorld) -> None:
    make_deployer(world).deploy(1, 7, OUTPUT)

    assert "update_cluster" not in world.log.names()


def test_pipelinerun_of_other_cluster_fails_before_external_calls(world: PipelineWorld) -> None:
    world.pipelineruns.runs[8] = PipelineRun(id=8, cluster_id=2)

    with pytest.raises(NotFoundError):
        make_deployer(world).deploy(1, 8, OUTPUT)

    assert world.log.names() == ["get_pipelinerun"]
    assert world.cd.created == []


def test_missing_pipelinerun_is_not_found(world: PipelineWorld) -> None:
    with pytest.raises(NotFoundError):
        make_deployer(world).deploy(1, 99, OUTPUT)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda world: world.applications.applications.clear(),
        lambda world: world.template_releases.releases.clear(),
        lambda world: world.regions.regions.clear(),
    ],
)
def test_missing_entities_are_not_found(world: PipelineWorld, mutate) -> None:
    mutate(world)

    with pytest.raises(NotFoundError):
        make_deployer(world).deploy(1, 7, OUTPUT)


def test_merge_failure_leaves_committed_status(world: PipelineWorld) -> None:
    world.git_repo.errors["merge_branch"] = UpstreamError("merge conflict in system/env.yaml")

    with pytest.raises(UpstreamError, match="merge branch: merge conflict"):
        make_deployer(world).deploy(1, 7, OUTPUT)

    assert world.pipelineruns.runs[7].status == PipelineStatus.COMMITTED
    assert world.cd.created == []


def test_deploy_failure_leaves_merged_status(world: PipelineWorld) -> None:
    world.cd.errors["deploy_cluster"] = UpstreamError("sync failed with status 500")

    with pytest.raises(UpstreamError) as excinfo:
        make_deployer(world).deploy(1, 7, OUTPUT)

    assert excinfo.value.message.startswith("deploy cluster: ")
    assert isinstance(excinfo.value.__cause__, UpstreamError)
    assert world.pipelineruns.runs[7].status == PipelineStatus.MERGED
    assert PipelineStatus.FAILED not in [call[1] for call in world.log.calls if call[0] == "update_status"]


def test_status_write_failure_propagates(world: PipelineWorld) -> None:
    world.pipelineruns.fail_status = PipelineStatus.MERGED

    with pytest.raises(RuntimeError):
        make_deployer(world).deploy(1, 7, OUTPUT)

    assert world.pipelineruns.runs[7].status == PipelineStatus.COMMITTED
    assert "create_cluster" not in world.log.names()


def test_retry_never_moves_status_backward(world: PipelineWorld) -> None:
    world.pipelineruns.runs[7].status = PipelineStatus.MERGED

    make_deployer(world).deploy(1, 7, OUTPUT)

    statuses = [call[1] for call in world.log.calls if call[0] == "update_status"]
    assert statuses == [PipelineStatus.MERGED, PipelineStatus.OK]


def test_retry_after_partial_failure_completes(world: PipelineWorld) -> None:
    world.cd.errors["create_cluster"] = UpstreamError("argocd unavailable")
    deployer = make_deployer(world)
    with pytest.raises(UpstreamError):
        deployer.deploy(1, 7, OUTPUT)

    del world.cd.errors["create_cluster"]
    deployer.deploy(1, 7, OUTPUT)

    assert world.pipelineruns.runs[7].status == PipelineStatus.OK


def test_cluster_lock_rejects_concurrent_deploy(world: PipelineWorld) -> None:
    locks = ClusterLocks()
    deployer = make_deployer(world, locks=locks, lock_timeout=0.01)
    held = threading.Event()
    release = threading.Event()

    def hold_lock() -> None:
        with locks.hold(1):
            held.set()
            release.wait(5)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    try:
        assert held.wait(5)
        with pytest.raises(ConflictError):
            deployer.deploy(1, 7, OUTPUT)
    finally:
        release.set()
        holder.join()

    assert world.log.calls == []
    assert deployer.deploy(1, 7, OUTPUT).pipelinerun_id == 7
    assert not locks.locked(1)
    assert len(locks) == 0


def test_cluster_locks_are_dropped_once_released() -> None:
    locks = ClusterLocks()

    for cluster_id in range(50):
        with locks.hold(cluster_id):
            assert locks.locked(cluster_id)
            assert len(locks) == 1

    assert len(locks) == 0
    assert not locks.locked(3)


def test_cluster_lock_entry_survives_while_another_caller_holds_it() -> None:
    locks = ClusterLocks()

    with locks.hold(1):
        with pytest.raises(ConflictError):
            with locks.hold(1, timeout=0.01):
                pass
        assert locks.locked(1)
        assert len(locks) == 1

    assert len(locks) == 0
