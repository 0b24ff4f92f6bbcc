"""CD backend facade: cluster lifecycle on Argo CD plus workload queries on Kubernetes."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from ..common.errors import InvalidArgumentError
from ..kube.client import KubeClient
from ..kube.informer import InformerFactory
from ..workload.ability import Ability
from ..workload.models import GroupVersionResource, HealthCheckResult, Step, WorkloadRef
from ..workload.registry import AbilityRegistry
from .argocd import ArgoCDFactory
from .params import CreateClusterParams, DeployClusterParams


class CDBackend(Protocol):
    """Cluster lifecycle calls the deploy pipeline depends on."""

    def create_cluster(self, params: CreateClusterParams) -> None:
        ...

    def deploy_cluster(self, params: DeployClusterParams) -> None:
        ...


class ClusterCD:
    """
    Read and dispatch proxy to the live cluster. Holds no durable state.

    Workload queries resolve the ability for the workload's group/kind in the
    registry and hand it the Kubernetes connection.
    """

    def __init__(
        self,
        *,
        registry: AbilityRegistry,
        kube: KubeClient,
        informers: InformerFactory,
        argocd: ArgoCDFactory,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.kube = kube
        self.informers = informers
        self.argocd = argocd
        self.logger = logger or logging.getLogger(__name__)

    def warm_up(self, timeout: Optional[float] = None) -> bool:
        """Start informers for every resource the registered abilities read."""
        for gvr in self.registry.resources():
            self.informers.for_resource(gvr)
        self.informers.start()
        synced = self.informers.wait_for_cache_sync(timeout)
        if not synced:
            self.logger.warning("Informer caches did not sync within %ss", timeout)
        return synced

    def create_cluster(self, params: CreateClusterParams) -> None:
        self.argocd.create_cluster(params)

    def deploy_cluster(self, params: DeployClusterParams) -> None:
        self.argocd.deploy_cluster(params)

    def is_healthy(self, ref: WorkloadRef) -> HealthCheckResult:
        result = self._ability(ref).is_healthy(ref, self.kube)
        if result.error is not None:
            self.logger.warning("Health check of %s could not read cluster state: %s", ref, result.error)
        return result

    def get_steps(self, ref: WorkloadRef) -> Step:
        return self._ability(ref).get_steps(ref, self.kube)

    def list_pods(self, ref: WorkloadRef) -> List[Dict[str, Any]]:
        return self._ability(ref).list_pods(ref, self.informers)

    def execute_action(self, ref: WorkloadRef, action: str) -> Dict[str, Any]:
        """
        Apply an operator action to the live object and persist it.

        The ``spec`` write goes first; the status subresource is then
        written on top of the returned object so the second write carries the
        fresh resourceVersion. Callers serialize actions on the same object.
        """
        ability = self._ability(ref)
        # Plural of every kind an ability serves follows the lowercase + "s" convention
        gvr = GroupVersionResource(group=ref.group, version=ref.version, resource=f"{ref.kind.lower()}s")
        live = self.kube.get(gvr, ref.namespace, ref.name)
        mutated = ability.action(action, live)
        self.logger.info("Executing action %s on %s", action, ref)

        updated = live
        if mutated.get("spec") != live.get("spec"):
            updated = self.kube.replace(gvr, mutated)
        if mutated.get("status") != live.get("status"):
            updated = self.kube.replace_status(gvr, {**updated, "status": mutated.get("status")})
        return updated

    def _ability(self, ref: WorkloadRef) -> Ability:
        ability = self.registry.resolve(ref.group, ref.kind)
        if ability is None:
            raise InvalidArgumentError(f"unsupported workload kind: {ref.group}/{ref.kind}")
        return ability
