"""Progress model returned by every workload ability."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.errors import DeployerError


@dataclass(frozen=True, slots=True)
class GroupVersionResource:
    """Identifies a resource collection in the Kubernetes API."""

    group: str
    version: str
    resource: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.api_version}/{self.resource}"


@dataclass(frozen=True, slots=True)
class WorkloadRef:
    """One live Kubernetes object, as reported by the CD resource tree."""

    namespace: str
    name: str
    version: str
    kind: str
    group: str = ""

    def __str__(self) -> str:
        return f"{self.kind}/{self.namespace}/{self.name}"


@dataclass(slots=True)
class Step:
    """
    Progress snapshot of a progressive rollout.

    ``replicas`` holds incremental replica targets, one per visible step, so
    ``sum(replicas)`` is the replica count reached after the last step.
    """

    index: int
    total: int
    replicas: List[int]
    manual_paused: bool = False
    auto_promote: bool = False
    extra: Optional[str] = None

    def __post_init__(self) -> None:
        if len(self.replicas) != self.total:
            raise ValueError(f"step total {self.total} does not match {len(self.replicas)} replica targets")
        if not 0 <= self.index <= self.total:
            raise ValueError(f"step index {self.index} out of range [0, {self.total}]")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "total": self.total,
            "replicas": list(self.replicas),
            "manualPaused": self.manual_paused,
            "autoPromote": self.auto_promote,
            "extra": self.extra,
        }


@dataclass(slots=True)
class HealthCheckResult:
    """
    Outcome of a workload health check.

    A read failure is reported as ``healthy=True`` with ``error`` set so that
    callers can tell a transient failure apart from a confirmed unhealthy state.
    """

    healthy: bool
    error: Optional[DeployerError] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        """Return True when the verdict was reached without a read failure."""
        return self.error is None
