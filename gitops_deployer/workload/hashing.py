"""Deterministic hashes over pod specs and canary step lists."""
from __future__ import annotations

import copy
import hashlib
import json
from typing import Any, Dict, List, Mapping, Optional, Sequence

# Container fields a controller copies verbatim from the template into each pod.
# Everything else in a live pod spec may be defaulted or injected by the API server.
_HASHED_CONTAINER_FIELDS = ("name", "image", "command", "args", "env")

# Field order of the canary step struct in the rollout controller
_CANARY_STEP_FIELD_ORDER = (
    "setWeight",
    "setReplica",
    "setReplicas",
    "pause",
    "experiment",
    "analysis",
    "setCanaryScale",
    "setHeaderRoute",
    "setMirrorRoute",
    "plugin",
)

# k8s.io/apimachinery/pkg/util/rand alphabet
_SAFE_ALPHANUMS = "bcdfghjklmnpqrstvwxz2456789"

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193

# encoding/json escapes these even inside strings
_GO_HTML_ESCAPES = (
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("&", "\\u0026"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)


def _normalize_env(env: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Drop the fieldRef apiVersion the API server fills in on pods but not in CRD templates."""
    normalized: List[Dict[str, Any]] = []
    for var in env:
        var = copy.deepcopy(dict(var))
        field_ref = (var.get("valueFrom") or {}).get("fieldRef")
        if isinstance(field_ref, dict) and field_ref.get("apiVersion") == "v1":
            del field_ref["apiVersion"]
        normalized.append(var)
    return normalized


def _project_containers(containers: Optional[Sequence[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    projected: List[Dict[str, Any]] = []
    for container in containers or ():
        entry = {
            key: container[key]
            for key in _HASHED_CONTAINER_FIELDS
            if container.get(key) not in (None, [], {})
        }
        if "env" in entry:
            entry["env"] = _normalize_env(entry["env"])
        projected.append(entry)
    return projected


def pod_spec_projection(spec: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return the part of a pod spec that is identical in a template and its pods."""
    spec = spec or {}
    return {
        "containers": _project_containers(spec.get("containers")),
        "initContainers": _project_containers(spec.get("initContainers")),
    }


def compute_pod_spec_hash(spec: Optional[Mapping[str, Any]]) -> str:
    """
    Compute a canonical hash of a pod spec.

    The projection is serialized as compact JSON with sorted keys, so the
    result is independent of map ordering and stable across processes.
    """
    canonical = json.dumps(pod_spec_projection(spec), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


def safe_encode_string(value: str) -> str:
    """Map characters onto an alphabet without vowels or confusable digits."""
    return "".join(_SAFE_ALPHANUMS[ord(char) % len(_SAFE_ALPHANUMS)] for char in value)


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _drop_nulls(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_drop_nulls(item) for item in value]
    return value


def _ordered_step(step: Mapping[str, Any]) -> Dict[str, Any]:
    step = _drop_nulls(step)
    ordered: Dict[str, Any] = {}
    for key in _CANARY_STEP_FIELD_ORDER:
        if key in step:
            ordered[key] = step[key]
    for key, value in step.items():
        if key not in ordered:
            ordered[key] = value
    return ordered


def step_list_json(steps: Optional[Sequence[Mapping[str, Any]]]) -> str:
    """
    Serialize canary steps byte for byte as Go's ``json.Marshal`` does.

    Struct field order, omitted nulls, raw UTF-8, and HTML-safe escapes for
    ``<``, ``>``, ``&`` and the JavaScript line separators.
    """
    payload = json.dumps([_ordered_step(step) for step in steps or ()], separators=(",", ":"), ensure_ascii=False)
    for char, escaped in _GO_HTML_ESCAPES:
        payload = payload.replace(char, escaped)
    return payload


def compute_step_hash(steps: Optional[Sequence[Mapping[str, Any]]]) -> str:
    """
    Hash a canary step list the way the rollout controller records it in
    ``status.currentStepHash``: FNV-1a over the JSON of the steps, with the
    decimal digest passed through ``safe_encode_string``.
    """
    payload = step_list_json(steps)
    return safe_encode_string(str(fnv1a_32(payload.encode("utf-8"))))
