"""Registry resolving a workload's group/kind to the ability that understands it."""
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from ..kube.client import GVR_POD
from .ability import Ability
from .models import GroupVersionResource
from .rollout import GVR_REPLICASET, GVR_ROLLOUT, CanaryRolloutAbility


class AbilityRegistry:
    """
    Table of abilities built once at process startup.

    Registration is only allowed until ``freeze()`` is called; afterwards the
    table is read-only and lookups from any thread need no locking.

    Usage:
        registry = AbilityRegistry()
        registry.register(rollout_ability, GVR_ROLLOUT, GVR_REPLICASET, GVR_POD)
        registry.freeze()
        ability = registry.resolve("argoproj.io", "Rollout")
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._entries: List[Tuple[Ability, Tuple[GroupVersionResource, ...]]] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, ability: Ability, *resources: GroupVersionResource) -> None:
        """Add an ability and the resources it needs cached."""
        if self._frozen:
            raise RuntimeError("ability registry is frozen; register abilities during startup")
        self._entries.append((ability, tuple(resources)))
        self.logger.debug(
            "Registered ability %s for resources %s",
            type(ability).__name__,
            ", ".join(str(resource) for resource in resources),
        )

    def freeze(self) -> "AbilityRegistry":
        self._frozen = True
        return self

    def resolve(self, group: str, kind: str) -> Optional[Ability]:
        """Return the first ability that matches ``group``/``kind``, or None."""
        for ability, _ in self._entries:
            if ability.matches_kind(group, kind):
                return ability
        return None

    def resources(self) -> List[GroupVersionResource]:
        """Resources every registered ability reads, without duplicates, in registration order."""
        seen: List[GroupVersionResource] = []
        for _, resources in self._entries:
            for resource in resources:
                if resource not in seen:
                    seen.append(resource)
        return seen

    def __len__(self) -> int:
        return len(self._entries)


def build_default_registry(logger: Optional[logging.Logger] = None) -> AbilityRegistry:
    """Build and freeze the registry of every workload kind this deployer understands."""
    registry = AbilityRegistry(logger=logger)
    registry.register(CanaryRolloutAbility(), GVR_ROLLOUT, GVR_REPLICASET, GVR_POD)
    return registry.freeze()
