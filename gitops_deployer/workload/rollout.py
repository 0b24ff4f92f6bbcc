"""Ability for the Argo canary ``Rollout`` custom resource."""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from ..common.errors import RESOURCE_IN_K8S, DeployerError, InvalidArgumentError, NotFoundError
from ..kube.client import GVR_POD, KubeClient
from ..kube.informer import InformerFactory
from .hashing import compute_pod_spec_hash, compute_step_hash
from .models import GroupVersionResource, HealthCheckResult, Step, WorkloadRef
from .patch import RolloutPatch
from .rollout_models import Rollout

ROLLOUT_GROUP = "argoproj.io"
ROLLOUT_KIND = "Rollout"

GVR_ROLLOUT = GroupVersionResource(group=ROLLOUT_GROUP, version="v1alpha1", resource="rollouts")
GVR_REPLICASET = GroupVersionResource(group="apps", version="v1", resource="replicasets")

ACTION_RESUME = "resume"
ACTION_PAUSE = "pause"
ACTION_PROMOTE_FULL = "promote-full"
ACTION_PROMOTE = "promote"
ACTION_AUTO_PROMOTE = "auto-promote"
ACTION_CANCEL_AUTO_PROMOTE = "cancel-auto-promote"

logger = logging.getLogger(__name__)


def _resume(_: Rollout) -> RolloutPatch:
    return RolloutPatch(paused=False, clear_pause_conditions=True)


def _pause(_: Rollout) -> RolloutPatch:
    return RolloutPatch(paused=True)


def _promote_full(rollout: Rollout) -> RolloutPatch:
    return RolloutPatch(
        paused=False,
        clear_pause_conditions=True,
        current_step_index=len(rollout.spec.canary_steps),
    )


def _promote(_: Rollout) -> RolloutPatch:
    return RolloutPatch(paused=False, clear_pause_conditions=True)


def _auto_promote(_: Rollout) -> RolloutPatch:
    return RolloutPatch(paused=False, clear_pause_conditions=True, auto_promote=True)


def _cancel_auto_promote(_: Rollout) -> RolloutPatch:
    return RolloutPatch(auto_promote=False)


ACTIONS: Dict[str, Callable[[Rollout], RolloutPatch]] = {
    ACTION_RESUME: _resume,
    ACTION_PAUSE: _pause,
    ACTION_PROMOTE_FULL: _promote_full,
    ACTION_PROMOTE: _promote,
    ACTION_AUTO_PROMOTE: _auto_promote,
    ACTION_CANCEL_AUTO_PROMOTE: _cancel_auto_promote,
}


def parse_rollout(obj: Mapping[str, Any]) -> Rollout:
    """Convert an unstructured object into the rollout schema."""
    try:
        return Rollout.model_validate(obj)
    except ValidationError as exc:
        name = (obj.get("metadata") or {}).get("name", "") if isinstance(obj, Mapping) else ""
        raise InvalidArgumentError(f"convert to rollout failed: {name}: {exc}", resource=RESOURCE_IN_K8S) from exc


def cumulative_replicas(rollout: Rollout) -> List[int]:
    """Replica count reached after each weight or replica step, in step order."""
    total = rollout.desired_replicas()
    targets: List[int] = []
    for step in rollout.spec.canary_steps:
        if step.set_weight is not None:
            # ceil(weight / 100 * total) in integer arithmetic
            targets.append(-(-step.set_weight * total // 100))
        elif step.set_replicas is not None:
            targets.append(step.set_replicas)
    return targets


def incremental_replicas(cumulative: List[int]) -> List[int]:
    return [value if i == 0 else value - cumulative[i - 1] for i, value in enumerate(cumulative)]


class CanaryRolloutAbility:
    """Reads health and canary progress of a ``Rollout`` and applies operator actions."""

    def matches_kind(self, group: str, kind: str) -> bool:
        return group == ROLLOUT_GROUP and kind == ROLLOUT_KIND

    def is_healthy(self, ref: WorkloadRef, kube: KubeClient) -> HealthCheckResult:
        """
        Healthy when every desired replica runs a pod built from the current
        template and, if the rollout reports a step index, all canary steps are done.

        A missing rollout counts as healthy. Any other read or conversion
        failure is returned as ``healthy=True`` with the error attached.
        """
        try:
            rollout, _ = self._get_rollout(ref, kube)
        except NotFoundError:
            logger.debug("[workload rollout: %s]: not found, treated as healthy", ref.name)
            return HealthCheckResult(healthy=True)
        except DeployerError as exc:
            return HealthCheckResult(healthy=True, error=exc)

        template = rollout.spec.template
        try:
            pods = kube.list_pods(rollout.metadata.namespace or ref.namespace, template.metadata.labels)
        except DeployerError as exc:
            return HealthCheckResult(healthy=True, error=exc)
        logger.debug("[workload rollout: %s]: list pods: count = %d", ref.name, len(pods))

        required = rollout.desired_replicas()
        template_hash = compute_pod_spec_hash(template.spec)
        matched = sum(
            1 for pod in pods if self._pod_matches(ref, pod, template_hash, template.metadata.annotations)
        )
        details = {"required": required, "matched": matched}
        if matched != required:
            logger.debug("[workload rollout: %s]: required %d, has %d", ref.name, required, matched)
            return HealthCheckResult(healthy=False, details=details)

        current = rollout.status.current_step_index
        if current is not None:
            total = len(rollout.spec.canary_steps)
            logger.debug("[workload rollout: %s]: current step = %d, total steps = %d", ref.name, current, total)
            details.update(current_step=current, total_steps=total)
            return HealthCheckResult(healthy=current == total, details=details)
        return HealthCheckResult(healthy=True, details=details)

    def list_pods(self, ref: WorkloadRef, informers: InformerFactory) -> List[Dict[str, Any]]:
        obj = informers.for_resource(GVR_ROLLOUT).get(ref.namespace, ref.name)
        rollout = parse_rollout(obj)
        return informers.for_resource(GVR_POD).list(ref.namespace, rollout.spec.template.metadata.labels)

    def get_steps(self, ref: WorkloadRef, kube: KubeClient) -> Step:
        rollout, obj = self._get_rollout(ref, kube)
        replicas_total = rollout.desired_replicas()
        steps = rollout.spec.canary_steps
        if not steps:
            return Step(index=0, total=1, replicas=[replicas_total])

        replicas = incremental_replicas(cumulative_replicas(rollout))

        # A changed step list restarts progress accounting
        index = 0
        current = rollout.status.current_step_index
        raw_steps = (((obj.get("spec") or {}).get("strategy") or {}).get("canary") or {}).get("steps")
        if current is not None and rollout.status.current_step_hash == compute_step_hash(raw_steps):
            reached = max(0, min(current, len(steps)))
            index = sum(1 for step in steps[:reached] if step.changes_replicas)

        return Step(
            index=index,
            total=len(replicas),
            replicas=replicas,
            manual_paused=rollout.spec.paused,
            auto_promote=rollout.status.auto_promote,
            extra=self._extra(current),
        )

    def action(self, action_name: str, obj: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``obj`` with the named action applied. ``obj`` is left untouched."""
        rollout = parse_rollout(obj)
        if not isinstance(obj.get("spec"), Mapping):
            raise InvalidArgumentError("spec not found")
        if not isinstance(obj.get("status"), Mapping):
            raise InvalidArgumentError("status not found")

        build_patch = ACTIONS.get(action_name)
        if build_patch is None:
            raise InvalidArgumentError(f"unsupported action: {action_name}")
        return build_patch(rollout).apply(obj)

    @staticmethod
    def _get_rollout(ref: WorkloadRef, kube: KubeClient) -> Tuple[Rollout, Dict[str, Any]]:
        gvr = GroupVersionResource(group=ROLLOUT_GROUP, version=ref.version or GVR_ROLLOUT.version, resource="rollouts")
        obj = kube.get(gvr, ref.namespace, ref.name)
        return parse_rollout(obj), obj

    @staticmethod
    def _pod_matches(
        ref: WorkloadRef,
        pod: Mapping[str, Any],
        template_hash: str,
        template_annotations: Mapping[str, str],
    ) -> bool:
        metadata = pod.get("metadata") or {}
        pod_name = metadata.get("name", "")
        if (pod.get("status") or {}).get("phase") != "Running":
            logger.debug("[workload rollout: %s]: pod(%s) is not Running", ref.name, pod_name)
            return False
        if compute_pod_spec_hash(pod.get("spec")) != template_hash:
            logger.debug("[workload rollout: %s]: pod(%s)'s hash is not matched", ref.name, pod_name)
            return False
        annotations = metadata.get("annotations") or {}
        for key, value in template_annotations.items():
            if key not in annotations or annotations[key] != value:
                logger.debug("[workload rollout: %s]: pod(%s)'s annotation is not matched", ref.name, pod_name)
                return False
        return True

    @staticmethod
    def _extra(current_index: Optional[int]) -> str:
        try:
            return json.dumps({"currentIndex": current_index})
        except (TypeError, ValueError) as exc:
            logger.error("marshal current step index failed: %s", exc)
            return "{}"
