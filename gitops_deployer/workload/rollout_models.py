"""Schema of the canary rollout custom resource, limited to the fields read here."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class _K8sModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ObjectMeta(_K8sModel):
    name: str = ""
    namespace: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    resource_version: Optional[str] = Field(default=None, alias="resourceVersion")


class PodTemplate(_K8sModel):
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: Dict[str, Any] = Field(default_factory=dict)


class CanaryStep(_K8sModel):
    set_weight: Optional[int] = Field(default=None, alias="setWeight")
    set_replicas: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("setReplica", "setReplicas", "set_replicas"),
    )
    pause: Optional[Dict[str, Any]] = None

    @property
    def changes_replicas(self) -> bool:
        """Return True when the step moves traffic or replicas rather than waiting."""
        return self.set_weight is not None or self.set_replicas is not None


class CanaryStrategy(_K8sModel):
    steps: List[CanaryStep] = Field(default_factory=list)


class RolloutStrategy(_K8sModel):
    canary: Optional[CanaryStrategy] = None


class RolloutSpec(_K8sModel):
    replicas: Optional[int] = None
    paused: bool = False
    template: PodTemplate = Field(default_factory=PodTemplate)
    strategy: RolloutStrategy = Field(default_factory=RolloutStrategy)

    @property
    def canary_steps(self) -> List[CanaryStep]:
        if self.strategy.canary is None:
            return []
        return self.strategy.canary.steps


class RolloutStatus(_K8sModel):
    current_step_index: Optional[int] = Field(default=None, alias="currentStepIndex")
    current_step_hash: Optional[str] = Field(default=None, alias="currentStepHash")
    auto_promote: bool = Field(default=False, alias="autoPromote")
    pause_conditions: Optional[List[Dict[str, Any]]] = Field(default=None, alias="pauseConditions")


class Rollout(_K8sModel):
    api_version: str = Field(default="", alias="apiVersion")
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: RolloutSpec = Field(default_factory=RolloutSpec)
    status: RolloutStatus = Field(default_factory=RolloutStatus)

    @model_validator(mode="before")
    @classmethod
    def _drop_null_sections(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    def desired_replicas(self) -> int:
        return 1 if self.spec.replicas is None else self.spec.replicas
