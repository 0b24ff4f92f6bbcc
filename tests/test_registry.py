"""Tests for the ability registry."""

from __future__ import annotations

import pytest

from gitops_deployer.kube.client import GVR_POD
from gitops_deployer.workload.registry import AbilityRegistry, build_default_registry
from gitops_deployer.workload.rollout import GVR_REPLICASET, GVR_ROLLOUT, CanaryRolloutAbility


class DeploymentAbility:
    def matches_kind(self, group: str, kind: str) -> bool:
        return group == "apps" and kind == "Deployment"


def test_resolve_returns_ability_for_exact_group_and_kind() -> None:
    registry = build_default_registry()

    ability = registry.resolve("argoproj.io", "Rollout")

    assert isinstance(ability, CanaryRolloutAbility)


@pytest.mark.parametrize(
    "group,kind",
    [
        ("argoproj.io", "rollout"),
        ("argoproj.io", "Rollouts"),
        ("apps", "Rollout"),
        ("", "Rollout"),
        ("argoproj.io", "AnalysisRun"),
    ],
)
def test_resolve_is_exact_match(group: str, kind: str) -> None:
    assert build_default_registry().resolve(group, kind) is None


def test_default_registry_is_frozen_with_rollout_resources() -> None:
    registry = build_default_registry()

    assert registry.frozen
    assert len(registry) == 1
    assert registry.resources() == [GVR_ROLLOUT, GVR_REPLICASET, GVR_POD]


def test_register_after_freeze_raises() -> None:
    registry = build_default_registry()

    with pytest.raises(RuntimeError):
        registry.register(DeploymentAbility(), GVR_POD)


def test_resolve_picks_first_matching_registration() -> None:
    registry = AbilityRegistry()
    first = CanaryRolloutAbility()
    second = CanaryRolloutAbility()
    registry.register(first, GVR_ROLLOUT, GVR_POD)
    registry.register(DeploymentAbility(), GVR_REPLICASET, GVR_POD)
    registry.register(second, GVR_ROLLOUT)
    registry.freeze()

    assert registry.resolve("argoproj.io", "Rollout") is first
    assert isinstance(registry.resolve("apps", "Deployment"), DeploymentAbility)
    assert registry.resources() == [GVR_ROLLOUT, GVR_POD, GVR_REPLICASET]
