"""Contract every workload kind implements to report health and progress."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Protocol

from .models import HealthCheckResult, Step, WorkloadRef

if TYPE_CHECKING:  # pragma: no cover
    from ..kube.client import KubeClient
    from ..kube.informer import InformerFactory


class Ability(Protocol):
    """Protocol implemented by all workload abilities.

    Abilities hold no state; the cluster connection is passed on each call.
    """

    def matches_kind(self, group: str, kind: str) -> bool:
        ...

    def is_healthy(self, ref: WorkloadRef, kube: "KubeClient") -> HealthCheckResult:
        ...

    def list_pods(self, ref: WorkloadRef, informers: "InformerFactory") -> List[Dict[str, Any]]:
        ...

    def get_steps(self, ref: WorkloadRef, kube: "KubeClient") -> Step:
        ...

    def action(self, action_name: str, obj: Mapping[str, Any]) -> Dict[str, Any]:
        ...
