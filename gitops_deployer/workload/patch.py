"""Typed patches applied to a live rollout object by operator actions."""
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from ..common.errors import InvalidArgumentError


@dataclass(frozen=True, slots=True)
class RolloutPatch:
    """
    Exactly the rollout fields an action may touch.

    ``None`` leaves a field alone. ``auto_promote=False`` removes
    ``status.autoPromote`` instead of writing ``false``.
    """

    paused: Optional[bool] = None
    clear_pause_conditions: bool = False
    current_step_index: Optional[int] = None
    auto_promote: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.current_step_index is not None and self.current_step_index < 0:
            raise InvalidArgumentError(f"current step index must be >= 0, got {self.current_step_index}")

    def apply(self, obj: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a deep copy of ``obj`` with the patch applied."""
        patched: Dict[str, Any] = copy.deepcopy(dict(obj))
        spec = patched.get("spec")
        status = patched.get("status")
        if not isinstance(spec, dict):
            raise InvalidArgumentError("spec not found")
        if not isinstance(status, dict):
            raise InvalidArgumentError("status not found")

        if self.paused is not None:
            spec["paused"] = self.paused
        if self.clear_pause_conditions:
            status.pop("pauseConditions", None)
        if self.current_step_index is not None:
            status["currentStepIndex"] = self.current_step_index
        if self.auto_promote is True:
            status["autoPromote"] = True
        elif self.auto_promote is False:
            status.pop("autoPromote", None)
        return patched
